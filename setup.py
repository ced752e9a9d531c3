from setuptools import setup


setup(
    name='bloomEx',
    packages=['bloomEx', 'bloomEx.plotX'],
    python_requires='>=3.9',
    use_scm_version={
        "write_to": "bloomEx/_version.py",
        "write_to_template": '__version__ = "{version}"',
        "tag_regex": r"^(?P<prefix>v)?(?P<version>[^\+]+)(?P<suffix>.*)?$",
        "fallback_version": "0.1.0",
    },
    setup_requires=['setuptools_scm'],
    install_requires=[
        'numpy',
        'pandas>=2.2',
        'xarray',
        'dask',
        'scipy',
        'matplotlib',
        'cartopy',
        'Pillow',
        'netCDF4',
        'SQLAlchemy>=2.0',
        'PyMySQL',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': ['bloomex=bloomEx.cli:main'],
    },
)
