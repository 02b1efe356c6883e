from setuptools import setup, find_packages

setup(
    name="margin-balancer",
    version="1.0.0",
    author="Margin Balancer Team",
    description="Margin-aware portfolio rebalancing decision engine",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "margin_balancer": ["py.typed"],
    },
    install_requires=[
        "pydantic==2.11.7",
        "PyYAML==6.0.2",
        "tzdata>=2024.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    python_requires=">=3.11",
)
