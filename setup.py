from setuptools import setup, find_namespace_packages  # type: ignore

setup(
    name="clbackup",
    version="0.1.0",
    url="https://github.com/cleaner-bot/cleaner-bot",
    author="Leo Developer",
    author_email="git@leodev.xyz",
    description="cleaner guild backup and restore",
    packages=find_namespace_packages(include=["clbackup*"]),
    package_data={"clbackup": ["py.typed"]},
    python_requires=">=3.10",
    install_requires=["hikari", "httpx", "msgpack"],
    extras_require={"test": ["pytest"]},
)
