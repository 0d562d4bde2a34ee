from setuptools import find_packages, setup

setup(
    name='mavbridge',
    version='1.0.0',
    description='MAVLink serial/UDP <-> MQTT bridge daemon',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['mavbridge', 'mavbridge.*']),
    python_requires='>=3.12',
    install_requires=[
        'aiomqtt>=2.0',
        'construct',
        'msgspec',
        'pymavlink',
        'pyserial-asyncio-fast',
        'tenacity',
        'transitions',
        'uvloop',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'mavbridge=mavbridge.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.12',
        'Operating System :: POSIX :: Linux',
    ],
)
