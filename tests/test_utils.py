import json
import os

from ec8a_form_extractor.types import BatchStats
from ec8a_form_extractor.utils import fallback_progress, load_env_file, save_json


def test_save_json_writes_dataclasses_and_creates_dirs(tmp_path):
    out = tmp_path / "sub" / "summary.json"
    save_json(out, {"stats": BatchStats(total=2, succeeded=1, failed=1, aggregate_numeric_sum=40), "path": tmp_path})
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["stats"] == {"total": 2, "succeeded": 1, "failed": 1, "aggregate_numeric_sum": 40}
    assert data["path"] == str(tmp_path)


def test_save_json_overwrites_existing(tmp_path):
    out = tmp_path / "result.json"
    save_json(out, {"v": 1})
    save_json(out, {"v": 2})
    assert json.loads(out.read_text(encoding="utf-8"))["v"] == 2


def test_load_env_file_does_not_override_by_default(tmp_path, monkeypatch):
    monkeypatch.setenv("EC8A_TEST_A", "from-env")
    monkeypatch.setenv("EC8A_TEST_B", "placeholder")
    monkeypatch.delenv("EC8A_TEST_B")
    env = tmp_path / "env.local"
    env.write_text('# comment\nEC8A_TEST_A=from-file\nEC8A_TEST_B="quoted"\nnot a pair\n', encoding="utf-8")

    assert load_env_file(env) == 1
    assert os.environ["EC8A_TEST_A"] == "from-env"
    assert os.environ["EC8A_TEST_B"] == "quoted"


def test_load_env_file_missing_is_ignored(tmp_path):
    assert load_env_file(tmp_path / "absent.env") == 0


def test_fallback_progress():
    assert fallback_progress(0, 4, width=4) == "[----] 0/4"
    assert fallback_progress(2, 4, width=4) == "[==--] 2/4"
    assert fallback_progress(9, 4, width=4) == "[====] 4/4"
