from __future__ import annotations

import json
import sys

import pytest

import narrate_paper
from papernarrator.pipeline import NarrationPipeline


@pytest.fixture()
def cli(monkeypatch, paper_backend, engine):
    monkeypatch.setattr(
        narrate_paper,
        "NarrationPipeline",
        lambda config: NarrationPipeline(config, backend=paper_backend, engine=engine),
    )

    def _run(*argv: str) -> None:
        monkeypatch.setattr(sys, "argv", ["narrate-paper", *argv])
        narrate_paper.main()

    return _run


def test_parser_defaults() -> None:
    args = narrate_paper._build_parser().parse_args(["paper.pdf"])

    assert args.output_dir == "output"
    assert args.source == "vision"
    assert args.method == "full"
    assert not args.output_wav


def test_cli_narrates_local_file(cli, sample_pdf, tmp_path, capsys) -> None:
    pdf = tmp_path / "paper.pdf"
    pdf.write_bytes(sample_pdf)
    out_dir = tmp_path / "out"

    cli(str(pdf), str(out_dir), "--output-wav", "--retries", "1", "-v", "0")

    status = json.loads(capsys.readouterr().out)
    assert status["status"] == "Completed"
    assert (out_dir / "anonymous" / "paper.wav").exists()
    assert (out_dir / "runStatus" / f"{status['runId']}.json").exists()


def test_cli_exits_non_zero_on_error(cli, sample_pdf, tmp_path) -> None:
    pdf = tmp_path / "paper.pdf"
    pdf.write_bytes(sample_pdf)

    with pytest.raises(SystemExit) as excinfo:
        cli(str(pdf), str(tmp_path / "out"), "--method", "abridged", "-v", "0")

    assert excinfo.value.code == 1


def test_cli_loads_figure_examples(monkeypatch, paper_backend, engine, sample_pdf, tmp_path) -> None:
    examples = tmp_path / "examples"
    examples.mkdir()
    (examples / "chart.png").write_bytes(b"png")
    (examples / "chart.json").write_text('{"summary": "Bars."}')
    pdf = tmp_path / "paper.pdf"
    pdf.write_bytes(sample_pdf)
    configs = []

    def pipeline(config):
        configs.append(config)
        return NarrationPipeline(config, backend=paper_backend, engine=engine)

    monkeypatch.setattr(narrate_paper, "NarrationPipeline", pipeline)
    monkeypatch.setattr(
        sys,
        "argv",
        ["narrate-paper", str(pdf), str(tmp_path / "out"), "--output-wav", "--figure-examples", str(examples), "-v", "0"],
    )
    narrate_paper.main()

    assert [e.image_path.name for e in configs[0].figure_examples] == ["chart.png"]


def test_cli_rejects_missing_figure_example_dir(cli, sample_pdf, tmp_path) -> None:
    pdf = tmp_path / "paper.pdf"
    pdf.write_bytes(sample_pdf)

    with pytest.raises(SystemExit) as excinfo:
        cli(str(pdf), "--figure-examples", str(tmp_path / "nowhere"))

    assert excinfo.value.code == 2
