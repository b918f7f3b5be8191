#!/usr/bin/env python3
"""
Setup script for the mirror-template service

Installs the ``shared`` and ``mirror`` packages that live under ``backend/``.
"""

from setuptools import setup, find_packages

setup(
    name="mirror-template-service",
    version="0.1.0",
    package_dir={"": "backend"},
    packages=find_packages("backend", exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        # 🚀 Web Framework
        "fastapi>=0.104.1",
        "uvicorn[standard]>=0.24.0",

        # 📋 Data Validation & Settings
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",

        # 🗄️ Database
        "aiosqlite>=0.19.0",

        # 🌐 HTTP & File Handling
        "python-multipart>=0.0.6",

        # 📊 Data Processing
        "openpyxl>=3.1.2",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.25.2",
        ],
    },
)
