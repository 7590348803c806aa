from setuptools import setup, find_packages

setup(
    name="sirelia",
    version="0.1.12",
    description="Real-time Mermaid diagram visualization bridge",
    packages=find_packages(include=["sirelia", "sirelia.*"]),
    install_requires=[
        "aiohttp>=3.9.0",
        "watchdog>=3.0.0",
        "mcp>=1.0.0,<2",
        "python-dotenv>=0.19.0",
        "pyyaml>=6.0.0"
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-mock>=3.10.0",
            "pytest-asyncio>=0.21.0",
            "black>=22.0.0",
            "isort>=5.0.0",
            "ruff>=0.0.2",
            "mypy>=1.0.0",
            "pytest-cov>=4.0.0"
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'sirelia=sirelia.cli:main',
        ],
    },
    python_requires=">=3.10",
)
