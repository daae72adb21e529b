from setuptools import setup, find_packages

package_name = 'client_card_control'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'setuptools',
        'numpy>=1.24',
        'websockets>=13.0',
        'paho-mqtt>=2.0.0',
        'httpx>=0.25.0',
    ],
    extras_require={
        'camera': [
            'opencv-python>=4.8',
            'mediapipe>=0.10.0,<0.10.30',
        ],
        'test': [
            'pytest>=7.0',
        ],
    },
    zip_safe=True,
    description='Hand gesture client for the Higher/Lower card game',
    license='MIT',
    entry_points={
        'console_scripts': [
            'client_card_control = client_card_control.main:main',
        ],
    },
)
