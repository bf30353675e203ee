from setuptools import setup, find_packages

setup(
    name="motifmix",
    version="0.1.0",
    description="Mixture scoring and EM training of hidden-motif occurrence models over symbol sequences.",
    python_requires=">=3.10",
    packages=find_packages(),
    classifiers=[
        "Programming Language :: Python",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
    ],
    keywords="motif discovery mixture model expectation maximization sequence analysis",
    license="BSD",
    install_requires=[
        "numba",
        "numpy",
        "pytest",
        "scipy"
    ],
    include_package_data=True,
    zip_safe=False,
)
