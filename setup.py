from setuptools import find_packages, setup

setup(
    name="owners-check",
    version="0.1.0",
    license="Apache License 2.0",

    python_requires=">=3.10",
    description="Evaluates OWNERS based code ownership policies on GitHub "
                "pull requests and reports the result as a check-run.",

    packages=find_packages(exclude=('tests',)),

    install_requires=[
        "Click>=7.0,<9.0",
        "toml>=0.10.0,<0.11.0",
        "PyGithub>=1.55,<3.0",
        "ruamel.yaml>=0.17.21",
        "PyYAML>=5.4",
        "tabulate>=0.8.6",
        "sentry-sdk>=1.0",
        "pydantic>=1.10,<2.0",
    ],

    extras_require={
        'test': [
            "pytest>=7.0",
            "pytest-mock>=3.10",
        ],
    },

    test_suite="owners_check.test",

    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
    ],
    entry_points={
        'console_scripts': [
            'owners-check = owners_check.cli:root',
        ],
    },
)
