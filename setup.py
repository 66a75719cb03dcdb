"""
crudforge - Schema-Driven CRUD Generator
Install: pip install -e .
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="crudforge",
    version="0.1.0",
    author="crudforge contributors",
    author_email="",
    description="Generate reversible CRUD backends and admin pages from entity descriptions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["crudforge", "crudforge.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
    ],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.115.0",
        "uvicorn>=0.20.0",
        "sqlalchemy>=2.0.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "httpx>=0.24.0",
            "black>=23.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "crudforge=crudforge.cli:main",
        ],
    },
    keywords="fastapi, sqlalchemy, vue, generator, code-generator, crud, rollback",
)
