from setuptools import setup, find_packages

setup(
    name="distribuidora-licores",
    version="0.1.0",
    description="Back-office de la distribuidora: usuarios, inventario multi-almacén, pedidos, facturas y entregas.",
    packages=find_packages(exclude=["tests", "tests.*", "migrations", "migrations.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "python-jose[cryptography]",
        "passlib[bcrypt]",
        "bcrypt<4.1",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg",
        "pydantic[email]>=2",
        "python-multipart",
        "reportlab",
        "alembic",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
            "aiosqlite",
        ],
    },
)
