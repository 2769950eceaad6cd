from setuptools import setup, find_packages

setup(
    name="minitoken",
    version="0.1.0",
    packages=find_packages(include=["minitoken", "minitoken.*"]),
    py_modules=["cli"],
    install_requires=[
        "pynacl>=1.5.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "minitoken=cli:main",  # Requires main() function in cli.py
        ],
    },
    python_requires=">=3.8",
)
