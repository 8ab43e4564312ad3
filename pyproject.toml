[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "phononkit"
version = "0.1.0"
description = "Terminal-side tooling for phonon cards: EVM redemption, configuration, telemetry, provisioning helpers and a local web backend"
requires-python = ">=3.10"
keywords = ["phonon", "ethereum", "evm", "secp256k1", "rlp", "redemption", "provisioning", "telemetry"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
    "Topic :: Security :: Cryptography",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]
dependencies = [
    "pycryptodome",
    "requests",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
phononkit-ca-keypair = "phononkit.keyformat:main"
phononkit-wxsgen = "phononkit.wxsgen:main"

[tool.hatch.build.targets.wheel]
packages = ["phononkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
