from setuptools import setup, find_packages
import sandftp

setup(
    name="sandftp",
    version=sandftp.__version__,
    packages=find_packages(exclude=["*.pyc"]),
    python_requires=">=3.6",
    scripts=["bin/sandftp", "bin/sandftp-client"],
    license="GPL 2",
    author="sandftp contributors",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: GNU General Public License v2 (GPLv2)",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.6",
        "Programming Language :: Python",
        "Topic :: Internet :: File Transfer Protocol (FTP)",
    ],
    package_data={
        "": ["*.txt", "*.rst"],
        "sandftp": ["templates/*/ftp/*.xml", "tests/data/*"],
    },
    keywords="FTP server sandbox passive",
    include_package_data=True,
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    description="""A minimal FTP-style file server with per-user sandboxes and single-use passive data connections""",
    install_requires=open("requirements.txt").read().splitlines(),
    extras_require={"test": ["pytest", "freezegun"]},
)
