from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="poisson-glm-toolkit",
    version="0.1.0",
    author="Poisson GLM Toolkit Team",
    author_email="contact@poissonglm.toolkit",
    description="Research-grade Python toolkit for Poisson GLM encoding models of neuronal spike trains",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/poissonglm/toolkit",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        'test': ['pytest>=7.0', 'hypothesis>=6.0'],
    },
    entry_points={
        'console_scripts': [
            'pgt-test=poisson_glm_toolkit.examples.installation_test:main',
        ],
    },
    include_package_data=True,
    package_data={
        'poisson_glm_toolkit': ['config/*.yaml'],
    },
)
