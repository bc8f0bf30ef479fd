from setuptools import find_packages, setup

setup(
    name="meshmask",
    version="0.1.0",
    author="Jan Bureš",
    description="Voxelize closed surface meshes on the grid of a reference image",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[      # Core dependencies
        "numpy",
        "trimesh",
        "nibabel",
        "tqdm"
    ],
    extras_require={        # Development dependencies
        "dev": [
            "black",
        ],
        "test": [
            "pytest",
        ]
    },
    entry_points={
        "console_scripts": [
            "meshmask=meshmask.main:main",
        ],
    },
    python_requires=">=3.8",  # Specify the compatible Python version
)
