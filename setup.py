from setuptools import setup, find_packages

# Read requirements from requirements.txt
with open('requirements.txt', 'r') as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

setup(
    name="tradebook",
    version="0.1.0",
    description="Tradebook - multi-venue trade import and FIFO reconciliation",
    author="Tradebook Team",
    packages=find_packages(include=['tradebook', 'tradebook.*']),
    install_requires=requirements,
    extras_require={
        'dev': [
            'pytest>=7.4.0',
            'pytest-cov>=4.1.0',
            'black>=23.9.0',
            'ruff>=0.1.0'
        ]
    },
    entry_points={
        'console_scripts': [
            'tradebook=tradebook.cli:main',
        ],
    },
    python_requires='>=3.11',
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
    ],
)
