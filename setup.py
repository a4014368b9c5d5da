import os

from setuptools import find_namespace_packages, setup

PROFILE_ENV = "PACKET_SENTINEL_BUILD_PROFILE"
DEFAULT_PROFILE = "core"
SUPPORTED_PROFILES = {"core", "extended"}

build_profile = os.getenv(PROFILE_ENV, DEFAULT_PROFILE).strip().lower()
if build_profile not in SUPPORTED_PROFILES:
    supported = ", ".join(sorted(SUPPORTED_PROFILES))
    raise ValueError(
        f"Perfil de build inválido '{build_profile}'. Perfiles soportados: {supported}."
    )

base_requires = [
    "PyYAML>=6.0",
    "requests>=2.32",
    "fastapi>=0.110",
    "uvicorn>=0.29",
]
extended_requires = [
    "scapy>=2.5",
]
test_requires = [
    "pytest>=8.0",
    "httpx>=0.27",
]

install_requires = base_requires.copy()
if build_profile == "extended":
    install_requires.extend(extended_requires)

setup(
    name="packet-sentinel",
    version="0.1.0",
    description="Heuristic per-packet network threat classifier with capture, persistence and HTTP API",
    packages=find_namespace_packages(include=["packet_sentinel", "packet_sentinel.*"]),
    include_package_data=False,
    python_requires=">=3.10",
    install_requires=install_requires,
    extras_require={"extended": extended_requires, "test": test_requires},
    entry_points={
        "console_scripts": [
            "packet-sentinel=packet_sentinel.cli.app:main",
        ]
    },
)
