from setuptools import setup

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()


install_requires = [
    'numpy',
    'pandas',
    'scipy',
    'numba',
    'tqdm'
    ]

setup(
    name='ATM-Gibbs',
    version='0.1.0',
    description='Collapsed Gibbs sampling for LDA with keyword-seeded topics, document covariates and topics over time',
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=["atm_src"],
    include_package_data=True,
    install_requires = install_requires,
    extras_require={
        'test': ['pytest'],
    },
    python_requires=">=3.8",
)
