import logging
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from tender_intel.models.schemas import ProcessClassification, TenderAnalysis
from tender_intel.services.ai_engine import AIEngine

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_CHARS = 300
CLASSIFICATION_BATCH_SIZE = 10

CLASSIFICATION_PROMPT = """
Analiza el siguiente lote de licitaciones públicas en Colombia y clasifícalas para una EMPRESA.

REGLAS DE CLASIFICACIÓN (CRÍTICO):
1. isCorporate: TRUE si el contrato es para una EMPRESA (Ejemplos: Obra Pública, Interventoría, Suministros, Consultoría Técnica, Compraventa, Mantenimiento de Infraestructura).
   isCorporate: FALSE si el contrato es para PERSONA NATURAL. Identificadores clave: "apoyo a la gestión", "auxiliar", "honorarios", "servicios profesionales de carácter personal", "asistente", "profesional universitario para apoyo".
2. isActionable: TRUE si el proceso tiene cronograma vigente para presentar ofertas hoy. FALSE si ya está adjudicado, celebrado o liquidado.
3. advice: Un consejo táctico de experto (máx 15 palabras). Ej: "Consorcio necesario por capacidad K", "Enfocarse en precio", "Requiere experiencia en mantenimiento vial".

LOTE DE PROCESOS:
{processes}

Genera un JSON que sea UN ARRAY de objetos con esta estructura:
[
    {{
        "id": "el ID proporcionado",
        "isCorporate": boolean,
        "isActionable": boolean,
        "advice": "string"
    }}
]
"""

ANALYSIS_PROMPT = """
Analiza la siguiente descripción de una licitación pública en Colombia y extrae la información clave.

TÍTULO: {title}

DESCRIPCIÓN:
{description}

Genera un JSON con la siguiente estructura:
{{
    "deliverables": ["lista de entregables o productos específicos que se deben entregar"],
    "technicalRequirements": ["lista de requisitos técnicos clave, tecnologías o perfiles requeridos"],
    "timeline": ["hitos de tiempo, plazos o duración mencionada"],
    "summary": "Un resumen ejecutivo de 2-3 líneas sobre qué hay que hacer exactamente"
}}

Si no hay información suficiente para algún campo, déjalo como array vacío o string vacío.
Sé conciso y directo.
"""


def format_process_batch(processes: Sequence[Dict[str, str]]) -> str:
    """ID / title / truncated description blocks separated by '---'"""
    blocks = []
    for process in processes:
        description = (process.get("description") or "")[:DESCRIPTION_PREVIEW_CHARS]
        blocks.append(
            f"ID: {process.get('id')}\nTÍTULO: {process.get('title') or ''}\nDESCRIPCIÓN: {description}..."
        )
    return "\n---\n".join(blocks)


async def classify_processes_ai(
    engine: AIEngine,
    processes: Sequence[Dict[str, str]],
    batch_size: int = CLASSIFICATION_BATCH_SIZE
) -> List[ProcessClassification]:
    """
    Label processes as corporate/actionable with short tactical advice.

    Processes are sent in batches of `batch_size`. A batch that fails or
    returns unusable output contributes nothing; results never raise.
    """
    if not processes:
        return []

    classifications: List[ProcessClassification] = []

    for start in range(0, len(processes), batch_size):
        batch = processes[start:start + batch_size]
        prompt = CLASSIFICATION_PROMPT.format(processes=format_process_batch(batch))

        response = await engine.generate_json(
            prompt,
            "Array of AIProcessClassification objects",
            feature="process_classification"
        )

        if not response.success or not isinstance(response.data, list):
            logger.warning(f"Process classification batch {start // batch_size + 1} returned no data: {response.error}")
            continue

        for item in response.data:
            try:
                classifications.append(ProcessClassification.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed classification: {e.error_count()} errors")

    logger.info(f"Classified {len(classifications)}/{len(processes)} processes")
    return classifications


async def analyze_tender_description(
    engine: AIEngine,
    description: str,
    title: str
) -> Optional[TenderAnalysis]:
    """Extract deliverables, technical requirements and timeline from a tender description"""
    prompt = ANALYSIS_PROMPT.format(title=title, description=description)

    response = await engine.generate_json(
        prompt,
        "TenderAnalysis object with deliverables, technicalRequirements, timeline arrays and summary string",
        feature="tender_analysis"
    )

    if not response.success or not isinstance(response.data, dict):
        return None

    try:
        return TenderAnalysis.model_validate(response.data)
    except ValidationError as e:
        logger.error(f"Error analyzing tender description: {str(e)}")
        return None
