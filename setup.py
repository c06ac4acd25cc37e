from setuptools import setup, find_packages

setup(
    name="pedestrian_behavior",
    version="0.1.0",
    packages=find_packages(include=['pedestrian_behavior*']),
    install_requires=[
        'numpy>=1.21.0',
        'scipy>=1.7.0',
        'pandas>=1.3.0',
        'tqdm>=4.60.0',
    ],
    extras_require={
        'test': ['pytest>=7.0.0'],
    },
    entry_points={
        'console_scripts': [
            'pedestrian-sim=pedestrian_behavior.run_simulation:main',
        ],
    },
    description="Behaviour engine for pedestrian-like agents in a shared 2D scene",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.8',
)
