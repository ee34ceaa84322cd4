"""
Cleanup handler tests.
"""

import os
import time

from homelab.tasks import CleanupHandler


def age(path, days):
    stamp = time.time() - days * 24 * 60 * 60
    os.utime(path, (stamp, stamp))


def test_removes_only_old_top_level_files(tmp_path):
    scratch = tmp_path / "scratch"
    nested = scratch / "nested"
    nested.mkdir(parents=True)
    old_file = scratch / "old.log"
    new_file = scratch / "new.log"
    nested_old = nested / "deep.log"
    for path in (old_file, new_file, nested_old):
        path.write_text("x")
    age(old_file, 10)
    age(nested_old, 10)

    outcome = CleanupHandler([scratch, tmp_path / "missing"]).execute({})

    assert outcome == "1 file(s) cleaned"
    assert not old_file.exists()
    assert new_file.exists()
    assert nested_old.exists()


def test_max_age_override(tmp_path):
    recent = tmp_path / "recent.tmp"
    recent.write_text("x")
    age(recent, 2)

    assert CleanupHandler([tmp_path]).execute({}) == "0 file(s) cleaned"
    assert CleanupHandler([tmp_path]).execute({"maxAgeDays": 1}) == "1 file(s) cleaned"
