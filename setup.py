from setuptools import setup, find_packages


setup(
    name='bfrop',
    version='1.0.0',
    description='Compile Brainfuck into a RISC-V return-oriented-programming chain',
    packages=find_packages(include=['bfrop', 'bfrop.*']),
    python_requires='>=3.8',
    install_requires=[
        'capstone>=5.0,<6',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'bfrop=bfrop.cli:main',
        ],
    },
)
