#!/usr/bin/env python3
"""Install the repository's agent skills into local LLM tool directories."""

from __future__ import annotations

import argparse
import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

REPO_ROOT = Path(__file__).resolve().parents[1]
COPY_IGNORE = shutil.ignore_patterns("__pycache__", "*.pyc", ".pytest_cache", "tests")


@dataclass(frozen=True)
class Target:
    name: str
    dest: Path
    # "flat": SKILL.md -> <dest>/<skill>.md, scripts beside dest; "skill-dir": copy the directory
    format: str


@dataclass(frozen=True)
class Skill:
    name: str
    path: Path
    description: str


def default_targets(home: Path) -> list[Target]:
    return [
        Target(name="Claude Code", dest=home / ".claude" / "commands", format="flat"),
        Target(name="Codex", dest=home / ".codex", format="skill-dir"),
        Target(name="Gemini", dest=home / ".gemini", format="skill-dir"),
    ]


def _parse_frontmatter(content: str) -> dict[str, Any]:
    if not content.startswith("---"):
        raise ValueError("SKILL.md must start with YAML frontmatter (---)")
    parts = content.split("---", 2)
    if len(parts) < 3:
        raise ValueError("SKILL.md frontmatter not properly closed with ---")
    parsed = yaml.safe_load(parts[1])
    if not isinstance(parsed, dict):
        raise ValueError("SKILL.md frontmatter must be a YAML mapping")
    return parsed


def load_skill(skill_dir: Path) -> Skill:
    meta = _parse_frontmatter((skill_dir / "SKILL.md").read_text(encoding="utf-8"))
    name = meta.get("name")
    if not isinstance(name, str) or name.strip() != skill_dir.name:
        raise ValueError(f"{skill_dir.name}: frontmatter name must match directory name")
    description = meta.get("description")
    if not isinstance(description, str) or not description.strip():
        raise ValueError(f"{skill_dir.name}: frontmatter description must be a non-empty string")
    return Skill(name=name.strip(), path=skill_dir, description=description.strip())


def discover_skills(root: Path) -> list[Skill]:
    return [
        load_skill(child)
        for child in sorted(root.iterdir())
        if child.is_dir() and not child.name.startswith(".") and (child / "SKILL.md").is_file()
    ]


def install_skill(skill: Skill, target: Target) -> None:
    if target.format == "flat":
        target.dest.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(skill.path / "SKILL.md", target.dest / f"{skill.name}.md")
        scripts = skill.path / "scripts"
        if scripts.is_dir():
            shutil.copytree(
                scripts,
                target.dest.parent / "scripts" / skill.name,
                ignore=COPY_IGNORE,
                dirs_exist_ok=True,
            )
        return
    if target.format == "skill-dir":
        shutil.copytree(skill.path, target.dest / skill.name, ignore=COPY_IGNORE, dirs_exist_ok=True)
        return
    raise ValueError(f"unknown target format: {target.format}")


def install(skills: list[Skill], targets: list[Target]) -> list[dict[str, Any]]:
    report: list[dict[str, Any]] = []
    for target in targets:
        try:
            target.dest.mkdir(parents=True, exist_ok=True)
            for skill in skills:
                install_skill(skill, target)
        except OSError as err:
            report.append({"target": target.name, "dest": str(target.dest), "ok": False, "error": str(err)})
            continue
        report.append({"target": target.name, "dest": str(target.dest), "ok": True, "skills": len(skills)})
    return report


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--home", type=Path, default=Path.home(), help="home directory to install into")
    parser.add_argument("--source", type=Path, default=REPO_ROOT, help="directory holding skill folders")
    parser.add_argument("--json", action="store_true", help="emit machine-readable output")
    args = parser.parse_args()

    try:
        skills = discover_skills(args.source)
    except (OSError, ValueError, yaml.YAMLError) as err:
        skills, discover_error = [], str(err)
    else:
        discover_error = "" if skills else f"No skills found in {args.source}"

    report = install(skills, default_targets(args.home)) if skills else []
    installed = sum(1 for item in report if item["ok"])
    ok = bool(skills) and installed > 0

    if args.json:
        print(
            json.dumps(
                {
                    "ok": ok,
                    "error": discover_error or None,
                    "skills": [skill.name for skill in skills],
                    "targets": report,
                },
                indent=2,
            )
        )
        return 0 if ok else 1

    if discover_error:
        print(discover_error)
        return 1
    print("Installing Lista Lending agent skills...\n")
    for item in report:
        if item["ok"]:
            print(f"  ✓ {item['target']:<12} → {item['dest']}  ({item['skills']} skills)")
        else:
            print(f"  ✗ {item['target']:<12} skipped: {item['error']}")
    if not ok:
        print("\nInstallation failed: no targets were written.")
        return 1
    print("\nInstalled skills:")
    for skill in skills:
        print(f"  /{skill.name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
