from setuptools import setup, find_packages

setup(
    name="placement-test-backend",
    version="0.1.0",
    packages=find_packages(exclude=["placement.tests", "placement.tests.*"]),
    package_data={
        "placement.assessments.placement_test": ["data/*.yaml"],
    },
    include_package_data=True,
    install_requires=[
        "fastapi>=0.87.0,<0.100.0",
        "uvicorn>=0.15.0",
        "pydantic>=1.8.0,<2.0.0",
        "sqlalchemy>=1.4.0,<2.0.0",
        "alembic>=1.7.0",
        "python-dotenv>=0.19.0",
        "PyYAML>=5.4",
        "aiosqlite>=0.17.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.20,<0.22",
            "httpx>=0.23,<0.28",
        ],
    },
    python_requires=">=3.8",
)
