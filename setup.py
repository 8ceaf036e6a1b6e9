import setuptools

setuptools.setup(
    name="runorder",
    version="0.1.0",
    description="Keeps a live running order in sync between a control console and its audience displays.",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "eventlet",
        "flask",
        "flask-socketio",
        "python-socketio[client]>=5.9",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-timeout>=2.3",
        ],
    },
    entry_points={
        "console_scripts": [
            "runorder=runorder.cli:main",
        ],
    },
)
