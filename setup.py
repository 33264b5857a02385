from setuptools import find_packages, setup

deps = [
    "boto3",
    "click",
    "click-aliases",
    "colorama",
    "ffmpeg-python",
    "minio",
    "Pillow",
    "psycopg2-binary",
    "pydantic",
    "pydantic-settings",
    "sqlalchemy>=2.0",
    "tqdm",
    "urllib3",
]

setup(
    name="variantsio",
    version="0.1.0",
    script_name="setup.py",
    python_requires=">3.8",
    zip_safe=False,
    install_requires=deps,
    extras_require={"test": ["pytest"]},
    include_package_data=True,
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "vio=variantsio.cli:cli",
            "variantsio-create-tables=variantsio.dev_cli:main",
        ],
    },
)
