from setuptools import setup, find_packages

with open("requirements.txt", "r") as f:
    requirements = f.read().splitlines()

setup(
    name="nebula-tools",
    version="1.4.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    package_data={
        "nebula_tools": ["templates/*/*.html"],
    },
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'nebula-tools=nebula_tools.cli:main',
        ],
    },
    author="eighteen73",
    author_email="hello@eighteen73.co.uk",
    description="Scaffolding and sync tools for Nebula WordPress websites",
    keywords="wordpress, wp-cli, nebula, deployment, tools",
    python_requires=">=3.8",
)
