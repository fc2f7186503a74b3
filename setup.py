from setuptools import setup

# Get long description from the README.rst file.
with open("README.rst") as file:
    LONG_DESC = file.read()

# Get version number from the module's __init__.py file.
with open("./src/banyan/__init__.py") as src:
    VER = [
        line.split('"')[1] for line in src.readlines() if line.startswith("__version__")
    ][0]

setup(
    name="banyan",
    version=VER,
    description="Python 3 LDAP client with asynchronous request correlation.",
    long_description=LONG_DESC,
    long_description_content_type="text/x-rst",
    license="MIT",
    package_dir={"": "src"},
    package_data={"banyan": ["py.typed"]},
    packages=["banyan", "banyan.active_directory", "banyan.asyncio"],
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "python-ldap>=3.4.0",
        "case-insensitive-dictionary>=0.2.1",
        "cryptography>=39.0.0",
    ],
    extras_require={"test": ["pytest>=7.0"]},
    keywords=["python3", "ldap", "python-ldap", "libldap", "asyncio", "active directory"],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: Unix",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Systems Administration :: Authentication/Directory :: LDAP",
    ],
)
