"""
Command-line entry point: `bloomex --ifcb-csv ifcb.csv --nbpts-csv nbpts.csv --out results/`
"""

import argparse

from .pipeline import run_analysis


def build_parser():
    ap = argparse.ArgumentParser(
        prog='bloomex',
        description='Detect phytoplankton blooms at hourly, daily, satellite and weekly '
                    'resolution and score each against the hourly IFCB record.',
    )
    source = ap.add_mutually_exclusive_group(required=True)
    source.add_argument('--ifcb-csv', help='IFCB records (datetime, taxon, biovolume) as CSV')
    source.add_argument('--ifcb-db', help='SQLAlchemy URL of the IFCB database, e.g. mysql+pymysql://user:pw@host/ifcb')
    ap.add_argument('--start', help='Start of the database query window')
    ap.add_argument('--end', help='End of the database query window')
    ap.add_argument('--nbpts-csv', help='Weekly NBPTS microscopy records as CSV')
    ap.add_argument('--satellite-dir', help='Directory of OLCI L2 swath files (*.nc)')
    ap.add_argument('--corrections', help='CSV of manual bloom date corrections')
    ap.add_argument('--taxa', nargs='+', help='Restrict the analysis to these taxa')
    ap.add_argument('--daily-hour', type=float, default=10, help='Hour of the emulated daily sample')
    ap.add_argument('--pixel-type', choices=['NBay', 'GSO'], default='NBay',
                    help='Satellite pixels used for the chlorophyll series')
    ap.add_argument('--out', default='bloomEx_output', help='Output directory')
    ap.add_argument('--no-figures', action='store_true', help='Skip TIFF figures')
    ap.add_argument('--no-map-features', action='store_true',
                    help='Draw the satellite pixel map without coastlines')
    ap.add_argument('-v', '--verbose', action='count', default=0, help='Print progress')
    return ap


def main(argv=None):
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.ifcb_db and not (args.start and args.end):
        ap.error('--start and --end are required with --ifcb-db')

    results = run_analysis(
        ifcb_csv=args.ifcb_csv,
        ifcb_db=args.ifcb_db,
        start=args.start,
        end=args.end,
        nbpts_csv=args.nbpts_csv,
        satellite_dir=args.satellite_dir,
        corrections_csv=args.corrections,
        taxa=args.taxa,
        out_dir=args.out,
        figures=not args.no_figures,
        map_features=not args.no_map_features,
        daily_hour=args.daily_hour,
        pixel_type=args.pixel_type,
        verbosity=args.verbose,
    )

    for name, path in results['files'].items():
        print(f'{name}: {path}')

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
