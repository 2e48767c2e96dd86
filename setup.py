from setuptools import setup, find_packages

setup(
    name="keypad_cracker",
    version="0.1",
    packages=find_packages(include=["keypad_cracker", "keypad_cracker.*"]),
    install_requires=[
        'pyserial',
        'pyyaml',
        'numpy',
        'scipy',
        'python-dotenv'
    ],
    extras_require={
        'test': ['pytest'],
    },
)
