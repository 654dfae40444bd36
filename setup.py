from setuptools import setup


def read(path):
    with open(path) as f:
        return f.read()


setup(
    name="xdprofile",
    version="0.1.0",
    packages=["xdprofile"],
    entry_points={
        "console_scripts": ["xdprofile=xdprofile._script:main"],
    },
    install_requires=["threadpoolctl", "psutil"],
    extras_require={"dev": read("requirements-dev.txt").strip().splitlines()},
    description="Request-scoped function tracing and cachegrind profiling for Python.",
    classifiers=[
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: MacOS",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: Implementation :: CPython",
    ],
    python_requires=">=3.10",
    license="Apache 2.0",
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
)
