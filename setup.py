from setuptools import setup, find_packages

setup(
    name="autoprovision",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "rich",
        "requests",
        "urllib3",
        "python-dotenv",
        "toml",
        "rich-argparse",
        "asn1crypto",
        "PyJWT",
        "cryptography>=42",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "autoprovision=autoprovision.cli:main",
        ],
    },
)
