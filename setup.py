"""Packaging setup for the ResQ-Eye live sensing client."""

from pathlib import Path

from setuptools import find_packages, setup


dist_name = "ResQ-Eye"
package_dir = "resq_eye"
version = Path("VERSION.txt").read_text().strip()

install_requires = [
    "flask>=3.0",
    "google-genai>=1.0",
    "httpx>=0.27",
    "loguru>=0.7",
    "numpy>=1.26",
    "opencv-python-headless>=4.8",
    "pyttsx3>=2.90",
    "sounddevice>=0.4.6",
]

test_deps = [
    "pytest>=8.0",
    "pytest-asyncio>=0.23",
]

setup_kwargs = {
    "name": dist_name,
    "version": version,
    "description": "Live hazard sensing with adaptive polling and voice streaming",
    "zip_safe": False,
    "python_requires": ">=3.10",
    "packages": find_packages(include=[package_dir, f"{package_dir}.*"]),
    "include_package_data": True,
    "package_data": {f"{package_dir}.server": ["templates/*.html"]},
    "install_requires": install_requires,
    "extras_require": {"test": test_deps},
    "entry_points": {"console_scripts": ["resq-eye = resq_eye.cli:main"]},
}

setup(**setup_kwargs)
