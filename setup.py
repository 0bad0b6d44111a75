"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="coder-chat-client",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["coder_chat", "coder_chat.*"]),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "httpx",
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
        "prometheus-client",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "fastapi",
        ],
    },
    entry_points={
        "console_scripts": [
            "coder-chat=coder_chat.cli:cli",
        ],
    },
)
