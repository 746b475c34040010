#!/usr/bin/env python3
"""
atlas_fusion Setup Script
"""

from setuptools import setup, find_packages

setup(
    name='atlas_fusion',
    version='1.0.0',
    description='Multi-sensor pose fusion with weighted quaternion averaging',
    author='FurSys AI Team',
    packages=find_packages(include=['atlas_fusion', 'atlas_fusion.*']),
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.20.0',
        'scipy>=1.7.0',
        'pyyaml>=5.4.0',
        'pandas>=1.3.0',
    ],
    extras_require={
        'dev': [
            'pytest>=6.0.0',
            'pytest-cov>=2.0.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'atlas_fusion=atlas_fusion.main:main',
        ],
    },
)
