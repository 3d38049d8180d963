import argparse
import re
from pathlib import Path

import toml

PARTS = ("major", "minor", "patch")


def increment_version(version_str: str, part: str = "patch") -> str:
    """Bump a "vMAJOR.MINOR.PATCH" version string.
    Bumping a part resets every part after it.
    """
    if part not in PARTS:
        raise ValueError(f"part must be one of {PARTS}, got '{part}'")
    match = re.fullmatch(r"v(\d+)\.(\d+)\.(\d+)", version_str)
    if match is None:
        raise ValueError(f"Version must look like v1.2.3, got '{version_str}'")
    numbers = [int(n) for n in match.groups()]
    idx = PARTS.index(part)
    numbers[idx] += 1
    for later in range(idx + 1, len(numbers)):
        numbers[later] = 0
    return "v" + ".".join(map(str, numbers))


def update_versions(part: str = "patch", repo_root: Path | None = None) -> str:
    repo_root = repo_root or Path(__file__).parent
    pyproject_path = repo_root / "pyproject.toml"
    init_path = repo_root / "pysettle" / "__init__.py"

    pyproject = toml.load(pyproject_path)
    new_version = increment_version(pyproject["project"]["version"], part)

    pyproject["project"]["version"] = new_version
    with open(pyproject_path, "w") as f:
        toml.dump(pyproject, f)

    init_content = init_path.read_text()
    new_init_content = re.sub(
        r'(__version__\s*=\s*["\'].+?["\'])', f'__version__ = "{new_version}"', init_content
    )
    init_path.write_text(new_init_content)

    return new_version


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Bump the pysettle version")
    parser.add_argument("part", nargs="?", default="patch", choices=PARTS)
    args = parser.parse_args()
    new_version = update_versions(args.part)
    print(f"Updated version to {new_version}")
