"""
Setup script for LAN Scanner.

Usage:
    pip install -e .
    pip install -e .[test]

Installs the ``lan-scanner`` command.
"""
from setuptools import setup

setup(
    name='lan-scanner',
    version='1.0.0',
    description='LAN device discovery with mDNS, SSDP, NetBIOS and device history',
    python_requires='>=3.9',
    packages=[
        # Our packages
        'config',
        'discovery',
        'storage',
    ],
    py_modules=['lan_scanner'],
    install_requires=[
        'psutil',
        'zeroconf',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'lan-scanner=lan_scanner:main',
        ],
    },
)
