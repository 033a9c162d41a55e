from setuptools import setup


setup(
    name="stock-audit",
    version="0.1.0",
    description="IRA and Cycle Count compliance statistics from branch spreadsheet exports",
    packages=["stock_audit"],
    package_data={
        "stock_audit": [
            "data/*.json",
        ]
    },
    include_package_data=True,
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "all": ["xlrd"],
    },
    entry_points={
        "console_scripts": [
            "stock-audit=stock_audit.cli:main",
        ]
    },
)
