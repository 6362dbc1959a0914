
import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name='fraudboard',
    version='1.0.0',
    author="Datathon Organizers",
    description="Submission portal for a fraud-detection datathon: CSV scoring, daily quotas and a leaderboard.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    py_modules=['launch_entrypoint'],
    install_requires=[
        'numpy>=1.22.0',   # Metric computation
        'pandas>=1.2',     # CSV parsing and leaderboard aggregation
        'requests',        # HTTP client for the portal API
        'boto3',           # DynamoDB score store and S3 reference datasets
        'shortuuid',       # Score identifiers
        'PyJWT>=2.0',      # Bearer token verification
        'fastapi',         # HTTP surface
        'uvicorn',         # ASGI server
        'python-multipart',  # Multipart uploads in FastAPI
    ],
    extras_require={
        'test': ['pytest', 'httpx', 'scikit-learn'],
    },
    entry_points={
        'console_scripts': ['fraudboard-server=launch_entrypoint:main'],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.10',
    include_package_data=True,
    )
