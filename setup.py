from setuptools import setup


setup(
    name="roster-mapper",
    version="0.3.0",
    description="Map participant rosters onto admin-defined import templates and produce normalized CSVs",
    packages=["roster_mapper"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    entry_points={
        "console_scripts": [
            "roster-mapper=roster_mapper.cli:main",
        ]
    },
)
