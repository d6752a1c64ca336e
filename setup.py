from setuptools import setup, find_packages

setup(
    name="examcore",
    version="0.1.0",
    packages=find_packages(exclude=["examcore.tests"]),
    install_requires=[
        "fastapi>=0.95.0",
        "uvicorn>=0.15.0",
        "pydantic>=1.8.0,<2.0.0",
        "sqlalchemy>=1.4.0,<2.0.0",
        "aiosqlite>=0.17.0",
        "alembic>=1.7.0",
        "python-dotenv>=0.19.0",
        "pyyaml>=5.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.23.0",
        ],
    },
    python_requires=">=3.8",
)
