[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hostagent"
version = "0.1.0"
description = "Host-side discovery agent steps: NTP synchronisation, agent image upgrade, machine identity, Tang connectivity and command helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["agent", "chrony", "ntp", "tang", "discovery", "nmap", "wiremock"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
hostagent-ntp-synchronizer = "hostagent.ntp_synchronizer:main"

[tool.hatch.build.targets.wheel]
packages = ["hostagent"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
