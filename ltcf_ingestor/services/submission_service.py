# ltcf_ingestor/services/submission_service.py
import asyncio
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ltcf_ingestor.commons.errors import SubmissionError, UnsupportedResourceError
from ltcf_ingestor.commons.logger import logger
from ltcf_ingestor.helpers.file_transport import FileWatcher, queued_files
from ltcf_ingestor.helpers.http_transport import SubmissionClient
from ltcf_ingestor.helpers.router import FlowRouter
from ltcf_ingestor.parsers.flat_file import parse_flat_file
from ltcf_ingestor.parsers.models import AdminMetadata, ResourceIds
from ltcf_ingestor.parsers.response import evaluate_response, extract_resource_ids
from ltcf_ingestor.services.update_service import UpdateService
from ltcf_ingestor.validation.validators import validate_admin_or_raise


@dataclass
class FileOutcome:
    source: Path
    passed: bool
    destination: Optional[Path] = None
    bundle_id: Optional[str] = None
    transaction_id: Optional[str] = None
    ids: Optional[ResourceIds] = None
    error: Optional[str] = None


def merge_ids(admin: AdminMetadata, built: ResourceIds, returned: ResourceIds) -> AdminMetadata:
    """Ids devueltos por el repositorio; si no vienen, los que se usaron en el Bundle."""
    return replace(
        admin,
        fhir_pat_id=returned.patient or built.patient,
        fhir_enc_id=returned.encounter or built.encounter,
        fhir_asm_id=returned.questionnaire_response or built.questionnaire_response,
    )


class SubmissionService:
    def __init__(
        self,
        router: FlowRouter,
        client: SubmissionClient,
        updates: UpdateService,
        paths,
        queue_pattern: str = "*.dat",
        strict_update_ids: bool = True,
    ):
        self.router = router
        self.client = client
        self.updates = updates
        self.paths = paths
        self.queue_pattern = queue_pattern
        self.strict_update_ids = strict_update_ids
        self._stop_event: Optional[asyncio.Event] = None
        self._fatal: Optional[UnsupportedResourceError] = None
        Path(paths["queued"]).mkdir(parents=True, exist_ok=True)
        Path(paths["output"]).mkdir(parents=True, exist_ok=True)

    def _fail(self, src: Path, admin: Optional[AdminMetadata], error: str) -> FileOutcome:
        dst = self.router.route_file(src, admin, passed=False)
        return FileOutcome(source=src, passed=False, destination=dst, error=error)

    async def process_file(self, path) -> FileOutcome:
        src = Path(path)
        logger.info(f"Procesando {src.name}")
        admin = None
        try:
            # 1) parsea y completa ids guardados
            record = parse_flat_file(src.read_text(encoding="utf-8-sig"))
            admin = self.updates.fill_saved_ids(AdminMetadata.from_record(record))
            # 2) valida bloque ADMIN
            validate_admin_or_raise(admin, self.strict_update_ids)
            # 3) construye y guarda el Bundle
            bundle = self.router.transform(record, admin)
            xml_text = self.router.render(bundle)
            self.router.write_output(src, xml_text)
            self.router.archive_raw("sent", xml_text, tag=src.stem)
        except ValidationError as ve:
            logger.error(f"Validación falló para {src.name}: {ve}")
            return self._fail(src, admin, str(ve))
        except ValueError as ex:
            logger.error(f"No se pudo transformar {src.name}: {ex}")
            return self._fail(src, admin, str(ex))

        # 4) envía
        transaction_id = None
        try:
            result = await self.client.submit(xml_text)
            body = result.body
            transaction_id = result.transaction_id
            passed = evaluate_response(body)
        except SubmissionError as ex:
            logger.error(f"Envío de {src.name} falló: {ex}")
            body = ex.body
            passed = False

        self.router.archive_raw("recv", body or "", tag=src.stem)
        self.router.save_run_log(src.stem, body, passed)

        # 5) actualiza ids y mueve el archivo
        final_admin = merge_ids(admin, bundle.ids, extract_resource_ids(body))
        self.updates.apply(final_admin, passed, body)
        dst = self.router.route_file(src, admin, passed)
        logger.info(f"{src.name}: {'PASS' if passed else 'FAIL'} (bundle {bundle.id})")
        return FileOutcome(
            source=src,
            passed=passed,
            destination=dst,
            bundle_id=bundle.id,
            transaction_id=transaction_id,
            ids=ResourceIds(final_admin.fhir_pat_id, final_admin.fhir_enc_id, final_admin.fhir_asm_id),
        )

    async def process_backlog(self) -> List[FileOutcome]:
        files = queued_files(self.paths["queued"], self.queue_pattern)
        if not files:
            logger.info("No hay archivos en cola")
            return []
        logger.info(f"Backlog detectado: {len(files)} archivo(s) en {self.paths['queued']}")
        outcomes = []
        for f in files:
            # Un fallo no detiene el backlog completo
            try:
                outcomes.append(await self.process_file(f))
            except UnsupportedResourceError:
                raise
            except Exception as ex:
                logger.exception(f"Fallo inesperado con {f}: {ex}")
                outcomes.append(self._fail(f, None, str(ex)))
        return outcomes

    async def _on_new_file(self, path: Path):
        try:
            await self.process_file(path)
        except UnsupportedResourceError as ex:
            # Error de configuración: se detiene el watcher y run_watch_mode lo relanza
            logger.critical(f"Configuración inválida procesando {path}: {ex}")
            self._fatal = ex
            if self._stop_event is not None:
                self._stop_event.set()
        except Exception as ex:
            logger.exception(f"Fallo inesperado con {path}: {ex}")
            self._fail(path, None, str(ex))

    async def run_watch_mode(self, stop_event: Optional[asyncio.Event] = None):
        loop = asyncio.get_running_loop()

        # 1) Procesar backlog existente
        await self.process_backlog()

        # 2) Arrancar watcher para nuevos archivos
        self._stop_event = stop_event or asyncio.Event()
        watcher = FileWatcher(self.paths["queued"], self.queue_pattern, self._on_new_file, loop)
        watcher.start()
        logger.info(f"Escuchando carpeta {self.paths['queued']}...")
        try:
            await self._stop_event.wait()
        finally:
            watcher.stop()
            self._stop_event = None
        if self._fatal is not None:
            raise self._fatal
