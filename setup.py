from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="volunteer-media",
    version="1.0.0",
    author="Volunteer Media Team",
    description="Volunteer management portal for animal shelters",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 4 - Beta",
        "Framework :: FastAPI",
        "Intended Audience :: Other Audience",
    ],
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"volunteer_media": ["migrations/script.py.mako"]},
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.27.0",
            "aiosqlite>=0.20.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "volunteer-media=volunteer_media.api.main:main",
            "volunteer-media-seed=volunteer_media.seed:main",
        ],
    },
    include_package_data=True,
)
