import json

import pytest

from ec8a_form_extractor import main as cli
from ec8a_form_extractor.errors import MissingCredential, SubmissionError
from ec8a_form_extractor.types import ExtractionFields, ImageInput


class _FakeExtractor:
    model = "fake"

    def __init__(self, fail_names=(), credential_error=None):
        self.fail_names = set(fail_names)
        self.credential_error = credential_error

    def check_credentials(self):
        if self.credential_error:
            raise self.credential_error

    def __call__(self, data, mime_type):
        if data.decode() in self.fail_names:
            raise RuntimeError(f"could not read {data.decode()}")
        return ExtractionFields(lga="Ikeja", total_valid_votes=10, votes={"APC": 6, "PDP": 3})


def _images(*names):
    return [ImageInput(name=f"{n}.jpg", data=n.encode(), mime_type="image/jpeg") for n in names]


def test_process_images_writes_csv_and_summary(tmp_path):
    out = tmp_path / "out" / "results.csv"
    summary_path = tmp_path / "summary.json"
    summary = cli.process_images(
        _images("a", "b", "c"),
        extractor=_FakeExtractor(fail_names={"b"}),
        out_csv=out,
        workers=2,
        compress=False,
        summary_json=summary_path,
        progress=False,
        target_labels=("APC", "PDP"),
    )

    assert (summary["total"], summary["succeeded"], summary["failed"]) == (3, 2, 1)
    assert summary["total_valid_votes"] == 20

    lines = out.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert lines[0].endswith(",APC,PDP")
    assert lines[1].startswith('"a.jpg","success","Ikeja"')
    assert lines[2].startswith('"b.jpg","error"')
    assert lines[1].endswith(",10,,6,3")

    saved = json.loads(summary_path.read_text(encoding="utf-8"))
    by_name = {r["name"]: r for r in saved["records"]}
    assert by_name["b.jpg"]["error"] == "could not read b"
    assert by_name["a.jpg"]["result"]["votes"] == {"APC": 6, "PDP": 3}
    assert by_name["a.jpg"]["warnings"][0]["check"] == "party_votes_sum"


def test_process_images_fails_fast_without_credentials(tmp_path):
    out = tmp_path / "results.csv"
    with pytest.raises(SubmissionError):
        cli.process_images(
            _images("a"),
            extractor=_FakeExtractor(credential_error=MissingCredential("Missing Gemini API key.")),
            out_csv=out,
            progress=False,
        )
    assert not out.exists()


def test_process_images_keeps_previews(tmp_path):
    import cv2
    import numpy as np

    ok, buf = cv2.imencode(".png", np.full((20, 30, 3), 200, dtype=np.uint8))
    assert ok
    img = ImageInput(name="scan.png", data=buf.tobytes(), mime_type="image/png")

    class _Ext(_FakeExtractor):
        def __call__(self, data, mime_type):
            return ExtractionFields(total_valid_votes=1)

    summary = cli.process_images(
        [img],
        extractor=_Ext(),
        out_csv=tmp_path / "r.csv",
        previews_dir=tmp_path / "previews",
        progress=False,
    )
    preview = summary["records"][0]["preview"]
    assert preview.endswith(".jpg")
    assert (tmp_path / "previews").exists()


def test_cli_exits_when_no_key_is_configured(tmp_path, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    scan = tmp_path / "a.jpg"
    scan.write_bytes(b"jpeg")
    out = tmp_path / "r.csv"

    with pytest.raises(SystemExit, match="Missing Gemini API key"):
        cli._cli(["--input", str(scan), "--out", str(out), "--env-file", str(tmp_path / "none.env"), "--no-progress"])
    assert not out.exists()


def test_cli_reads_key_from_env_file(tmp_path, monkeypatch, capsys):
    # setenv first so the value loaded from the env file is undone after the test
    monkeypatch.setenv("GEMINI_API_KEY", "placeholder")
    monkeypatch.delenv("GEMINI_API_KEY")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    env = tmp_path / "env.local"
    env.write_text("# local secrets\nGEMINI_API_KEY=from-file\n", encoding="utf-8")
    scan = tmp_path / "a.jpg"
    scan.write_bytes(b"jpeg")
    out = tmp_path / "r.csv"
    seen_keys = []

    def fake_generate(**kwargs):
        seen_keys.append(kwargs["api_key"])
        return json.dumps({"lga": "Ikeja", "totalValidVotes": 5, "votes": {"APC": 5}})

    monkeypatch.setattr("ec8a_form_extractor.gemini_client.generate_form_json", fake_generate)
    rc = cli._cli(["--input", str(scan), "--out", str(out), "--env-file", str(env), "--no-progress"])

    assert rc == 0
    assert seen_keys == ["from-file"]
    assert out.read_text(encoding="utf-8").splitlines()[1].startswith('"a.jpg","success"')
    assert "total valid votes: 5" in capsys.readouterr().out


def test_cli_rejects_empty_input_dir(tmp_path):
    with pytest.raises(SystemExit, match="No images found"):
        cli._cli(["--input", str(tmp_path), "--no-progress"])


def test_default_export_name_carries_the_date():
    from datetime import datetime, timezone

    assert cli.default_export_name(datetime(2027, 2, 25, 23, 5, tzinfo=timezone.utc)) == "election_data_export_2027-02-25.csv"


def test_cli_writes_dated_csv_when_out_is_omitted(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.setattr("ec8a_form_extractor.gemini_client.generate_form_json", lambda **kw: '{"votes": {}}')
    monkeypatch.setattr(cli, "default_export_name", lambda: "election_data_export_2027-02-25.csv")
    scan = tmp_path / "a.jpg"
    scan.write_bytes(b"jpeg")

    assert cli._cli(["--input", str(scan), "--env-file", str(tmp_path / "none.env"), "--no-progress"]) == 0
    assert (tmp_path / "election_data_export_2027-02-25.csv").exists()
