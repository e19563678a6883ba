import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml

from ltcf_ingestor.commons.fhir_engine import FhirEngine
from ltcf_ingestor.commons.logger import setup_logging
from ltcf_ingestor.commons.types import Settings
from ltcf_ingestor.helpers.http_transport import SubmissionClient, TokenManager
from ltcf_ingestor.helpers.id_store import IdStore
from ltcf_ingestor.helpers.router import FlowRouter
from ltcf_ingestor.parsers.outcome import ElementMap
from ltcf_ingestor.parsers.response import evaluate_response, extract_resource_ids
from ltcf_ingestor.services.submission_service import SubmissionService
from ltcf_ingestor.services.update_service import UpdateService

app = typer.Typer(add_completion=False, help="LTCF flat file -> FHIR Bundle ingestor")

DEFAULT_CONFIG = "ltcf_ingestor/configs/settings.yaml"


def resource_path(relative_path: str) -> str:
    """Devuelve la ruta absoluta a un recurso, ya sea ejecutando como .exe o en desarrollo"""
    if hasattr(sys, "_MEIPASS"):
        base_path = sys._MEIPASS
    else:
        base_path = os.path.abspath(".")
    return os.path.join(base_path, relative_path)


def load_cfg(path: Optional[str] = None) -> Settings:
    config_path = path or os.getenv("LTCF_CONFIG") or resource_path(DEFAULT_CONFIG)
    with open(config_path, "r", encoding="utf-8") as f:
        return Settings.model_validate(yaml.safe_load(f) or {})


def build_service(cfg: Settings) -> SubmissionService:
    if cfg.api is None or cfg.auth is None:
        raise typer.BadParameter("api y auth son obligatorios para enviar")
    paths = cfg.paths.model_dump()
    engine = FhirEngine(cfg.model_dump())
    router = FlowRouter(engine, cfg.model_dump())
    client = SubmissionClient(
        cfg.api.submission_endpoint, TokenManager.from_settings(cfg.auth), cfg.api.timeout_seconds
    )
    updates = UpdateService(IdStore(paths["id_store"]), ElementMap.from_yaml(paths.get("element_map")))
    return SubmissionService(
        router,
        client,
        updates,
        paths,
        queue_pattern=cfg.queue.search_pattern,
        strict_update_ids=cfg.validation.strict_update_ids,
    )


@app.command()
def process(config: Optional[str] = typer.Option(None, help="settings.yaml")):
    """Procesa una vez los archivos en cola (más antiguo primero)."""
    cfg = load_cfg(config)
    logger = setup_logging(cfg.paths.logs_root)
    logger.info("Iniciando procesamiento de archivos en cola")
    svc = build_service(cfg)
    outcomes = asyncio.run(svc.process_backlog())
    passed = sum(1 for o in outcomes if o.passed)
    typer.echo(f"{len(outcomes)} archivo(s): {passed} PASS, {len(outcomes) - passed} FAIL")


@app.command()
def watch(config: Optional[str] = typer.Option(None, help="settings.yaml")):
    """Procesa la cola y queda escuchando archivos nuevos."""
    cfg = load_cfg(config)
    logger = setup_logging(cfg.paths.logs_root)
    logger.info("Iniciando servicio en modo watch")
    svc = build_service(cfg)
    try:
        asyncio.run(svc.run_watch_mode())
    except KeyboardInterrupt:
        logger.info("Servicio detenido")


@app.command()
def build(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Archivo .dat"),
    out: Optional[Path] = typer.Option(None, help="Archivo XML de salida (stdout si se omite)"),
    config: Optional[str] = typer.Option(None, help="settings.yaml"),
):
    """Genera el Bundle XML de un archivo sin enviarlo."""
    engine = FhirEngine(load_cfg(config).model_dump() if config else None)
    xml_text = engine.transform(source.read_text(encoding="utf-8-sig"))
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(xml_text, encoding="utf-8")
        typer.echo(f"Bundle escrito en {out}")
    else:
        typer.echo(xml_text)


@app.command()
def evaluate(response: Path = typer.Argument(..., exists=True, dir_okay=False, help="Respuesta XML")):
    """Evalúa una respuesta guardada (PASS/FAIL) y muestra los ids devueltos."""
    text = response.read_text(encoding="utf-8-sig")
    ids = extract_resource_ids(text)
    typer.echo("PASS" if evaluate_response(text) else "FAIL")
    typer.echo(f"Patient={ids.patient} Encounter={ids.encounter} QuestionnaireResponse={ids.questionnaire_response}")


if __name__ == "__main__":
    app()
