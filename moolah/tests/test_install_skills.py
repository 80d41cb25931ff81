from __future__ import annotations

import json
from pathlib import Path

from ._moolah_rpc_helpers import REPO_ROOT, run_installer


def test_installs_into_all_targets(tmp_path: Path):
    proc = run_installer(["--home", str(tmp_path), "--source", str(REPO_ROOT), "--json"])
    assert proc.returncode == 0, proc.stderr
    report = json.loads(proc.stdout)
    assert report["ok"] is True
    assert report["skills"] == ["moolah"]
    assert [t["target"] for t in report["targets"]] == ["Claude Code", "Codex", "Gemini"]
    assert all(t["ok"] for t in report["targets"])

    assert (tmp_path / ".claude" / "commands" / "moolah.md").is_file()
    assert (tmp_path / ".claude" / "scripts" / "moolah" / "moolah_rpc.py").is_file()
    assert (tmp_path / ".codex" / "moolah" / "SKILL.md").is_file()
    assert (tmp_path / ".gemini" / "moolah" / "scripts" / "abi_codec.py").is_file()
    assert not list(tmp_path.rglob("__pycache__"))
    assert not (tmp_path / ".codex" / "moolah" / "tests").exists()
    assert not (tmp_path / ".claude" / "scripts" / "moolah" / "tests").exists()


def test_reinstall_overwrites_in_place(tmp_path: Path):
    first = run_installer(["--home", str(tmp_path), "--source", str(REPO_ROOT), "--json"])
    second = run_installer(["--home", str(tmp_path), "--source", str(REPO_ROOT), "--json"])
    assert first.returncode == 0, first.stderr
    assert second.returncode == 0, second.stderr


def test_source_without_skills_fails(tmp_path: Path):
    source = tmp_path / "empty"
    source.mkdir()
    proc = run_installer(["--home", str(tmp_path / "home"), "--source", str(source), "--json"])
    assert proc.returncode == 1
    report = json.loads(proc.stdout)
    assert report["ok"] is False
    assert "No skills found" in report["error"]
    assert not (tmp_path / "home").exists()


def test_mismatched_frontmatter_name_fails(tmp_path: Path):
    skill_dir = tmp_path / "src" / "lending"
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text("---\nname: other\ndescription: x\n---\n# body\n", encoding="utf-8")
    proc = run_installer(["--home", str(tmp_path / "home"), "--source", str(tmp_path / "src")])
    assert proc.returncode == 1
    assert "frontmatter name must match" in proc.stdout


def test_unwritable_target_is_reported_and_skipped(tmp_path: Path):
    (tmp_path / ".codex").write_text("not a directory", encoding="utf-8")
    proc = run_installer(["--home", str(tmp_path), "--source", str(REPO_ROOT), "--json"])
    assert proc.returncode == 0, proc.stderr
    report = json.loads(proc.stdout)
    assert report["ok"] is True
    targets = {t["target"]: t for t in report["targets"]}
    assert targets["Codex"]["ok"] is False
    assert targets["Codex"]["error"]
    assert targets["Claude Code"]["ok"] is True
    assert targets["Gemini"]["ok"] is True
    assert (tmp_path / ".gemini" / "moolah" / "SKILL.md").is_file()
