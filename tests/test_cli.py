import yaml
from typer.testing import CliRunner

from run import app, load_cfg

runner = CliRunner()

SAMPLE_DAT = """[ADMIN]
patOper=CREATE
fiscal=2024
quarter=Q1
[PATIENT]
A5A=unknown
A3=1940-02-03
[SECTION B]
B1=0
"""

OK_RESPONSE = """<Bundle xmlns="http://hl7.org/fhir">
  <type value="transaction-response"/>
  <entry><response><status value="201 Created"/><location value="Patient/P-1/_history/1"/></response></entry>
</Bundle>
"""


def test_build_to_stdout(tmp_path):
    src = tmp_path / "in.dat"
    src.write_text(SAMPLE_DAT, encoding="utf-8")
    result = runner.invoke(app, ["build", str(src)])
    assert result.exit_code == 0, result.output
    assert "<?xml version='1.0' encoding='UTF-8'?>" in result.output
    assert 'value="transaction"' in result.output
    assert "unknown" not in result.output


def test_build_to_file_with_config(tmp_path):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text(
        yaml.safe_dump(
            {
                "paths": {"transmit_root": "t", "queued": "q", "output": "o"},
                "mapping": {"hcn_absent_policy": "data-absent-reason"},
            }
        ),
        encoding="utf-8",
    )
    src = tmp_path / "in.dat"
    src.write_text(SAMPLE_DAT, encoding="utf-8")
    out = tmp_path / "out" / "bundle.xml"
    result = runner.invoke(app, ["build", str(src), "--out", str(out), "--config", str(cfg)])
    assert result.exit_code == 0, result.output
    text = out.read_text(encoding="utf-8")
    assert "irrs-ext-data-absent-reason" in text


def test_evaluate(tmp_path):
    resp = tmp_path / "resp.xml"
    resp.write_text(OK_RESPONSE, encoding="utf-8")
    result = runner.invoke(app, ["evaluate", str(resp)])
    assert result.exit_code == 0
    assert "PASS" in result.output
    assert "Patient=P-1" in result.output


def test_load_cfg_from_env(tmp_path, monkeypatch):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text("paths:\n  transmit_root: t\n  queued: q\n  output: o\n", encoding="utf-8")
    monkeypatch.setenv("LTCF_CONFIG", str(cfg))
    settings = load_cfg()
    assert settings.paths.queued == "q"
    assert settings.queue.search_pattern == "*.dat"
