from setuptools import setup

setup(
    name="carpool-backup",
    version="1.0.0",
    description="Backup e disaster recovery do banco de documentos do carpool",
    author="Carpool Platform Team",
    packages=[
        "carpool_backup",
        "carpool_backup.scripts",
    ],
    include_package_data=True,
    install_requires=[
        "pydantic>=2.5.2",
        "pydantic-settings>=2.1.0",
        "structlog>=23.2.0",
        "pymongo>=4.6.0",
        "prometheus-client>=0.19.0",
        "tenacity>=8.2.3",
    ],
    extras_require={
        "s3": ["boto3>=1.34.0"],
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "carpool-backup=carpool_backup.scripts.run_backup:main",
            "carpool-backup-scheduler=carpool_backup.scripts.run_scheduler:main",
        ],
    },
    python_requires=">=3.11",
)
