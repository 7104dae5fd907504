"""
Crowd jobs: upload of task data to the crowd provider and import of the
workers' judgments.

Entity annotation runs in two stages.  In the first, workers mark the named
entities of sentences (:meth:`CrowdTaskManager.upload_entity_task`).  In the
second, each entity the workers agreed on is shown again and workers decide
its type (:meth:`CrowdTaskManager.upload_classification_task`).  Both stages
mix gold items with known answers into the data so the provider can rate
its workers.
"""

from __future__ import annotations

import io
import json
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import requests

from spancrowd.config import DEFAULT_CROWDFLOWER_URL, CrowdConfig, Settings
from spancrowd.exc import TransportFailure
from spancrowd.services.judgments import ImportResult, JudgmentAggregator, SkipReason
from spancrowd.services.logs import get_logger, job_context
from spancrowd.services.span_store import SpanStore
from spancrowd.services.tasks import TaskDataGenerator

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from spancrowd.models import Document

logger = get_logger(__name__)


@dataclass
class CrowdJob:
    """A job on the crowd provider."""

    #: The provider's job ID; None until the job is created.
    id: str | None
    #: The job settings (title, instructions, CML, ...).
    template: dict[str, Any] = field(default_factory=dict)
    #: Countries crowd workers may come from.
    included_countries: list[str] = field(default_factory=list)


@dataclass
class ClassificationUpload:
    """The outcome of uploading a classification job."""

    #: The new job's ID.
    job_id: str
    #: Number of classification tasks uploaded.
    records: int
    #: Stage one lines and markers that did not become tasks.
    skipped: list[SkipReason] = field(default_factory=list)


class CrowdTransport(Protocol):
    """What :class:`CrowdTaskManager` needs from a crowd provider."""

    def create_job(self, template: dict[str, Any]) -> CrowdJob: ...

    def upload_data(self, job: CrowdJob, records: Sequence[dict[str, Any]]) -> None: ...

    def update_allowed_countries(self, job: CrowdJob) -> None: ...

    def get_status(self, job_id: str) -> dict[str, Any] | None: ...

    def retrieve_raw_judgments(self, job_id: str) -> str: ...


class CrowdFlowerClient:
    """
    :class:`CrowdTransport` over the CrowdFlower REST API.

    Every network or HTTP error is raised as
    :class:`~spancrowd.exc.TransportFailure`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_CROWDFLOWER_URL,
        timeout_s: int = 60,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: The CrowdFlower API key

        Keyword Args:
            base_url: The API endpoint
            timeout_s: Request timeout in seconds

        """
        #: The CrowdFlower API key.
        self.api_key = api_key
        #: The API endpoint, without trailing slash.
        self.base_url = base_url.rstrip("/")
        #: Request timeout in seconds.
        self.timeout_s = timeout_s

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Send a request to the API.

        Args:
            method: The HTTP method
            path: The path below :attr:`base_url`

        Keyword Args:
            **kwargs: Passed on to :func:`requests.request`

        Returns:
            The response

        Raises:
            TransportFailure: If the request fails or returns an error status

        """
        params = {"key": self.api_key, **kwargs.pop("params", {})}
        url = f"{self.base_url}/{path}"
        try:
            response = requests.request(
                method, url, params=params, timeout=self.timeout_s, **kwargs
            )
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"{method} {path} failed"
            raise TransportFailure(msg, error=e) from e
        return response

    def create_job(self, template: dict[str, Any]) -> CrowdJob:
        data = {
            f"job[{key}]": value
            for key, value in template.items()
            if isinstance(value, str | int | float)
        }
        response = self._request("POST", "jobs.json", data=data)
        job_id = response.json().get("id")
        if job_id is None:
            msg = "the provider did not return a job ID"
            raise TransportFailure(msg)
        logger.info("job created", job_id=job_id)
        return CrowdJob(id=str(job_id), template=template)

    def upload_data(self, job: CrowdJob, records: Sequence[dict[str, Any]]) -> None:
        body = "\n".join(json.dumps(record, ensure_ascii=False) for record in records)
        self._request(
            "POST",
            f"jobs/{job.id}/upload.json",
            data=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        logger.info("data uploaded", job_id=job.id, records=len(records))

    def update_allowed_countries(self, job: CrowdJob) -> None:
        self._request(
            "PUT",
            f"jobs/{job.id}.json",
            data={"job[included_countries][]": job.included_countries},
        )

    def get_status(self, job_id: str) -> dict[str, Any] | None:
        status = self._request("GET", f"jobs/{job_id}/ping.json").json()
        return status if isinstance(status, dict) else None

    def retrieve_raw_judgments(self, job_id: str) -> str:
        """
        Download the full JSON report of a job.

        The report is generated on request and delivered as a zip archive
        holding one JSON lines file.  While it is being generated the
        archive is empty.

        Args:
            job_id: The job ID

        Returns:
            The JSON lines, or an empty string if the report is not ready

        """
        self._request("POST", f"jobs/{job_id}/regenerate", params={"type": "json"})
        response = self._request(
            "GET", f"jobs/{job_id}.csv", params={"type": "json", "full": "true"}
        )
        try:
            with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
                names = archive.namelist()
                if not names:
                    return ""
                return archive.read(names[0]).decode("utf-8")
        except zipfile.BadZipFile:
            return response.text


class CrowdTaskManager:
    """
    Runs the two stage named entity workflow against a crowd provider.

    Imports flush their spans but leave committing to the caller, so that a
    job is imported completely or not at all.

    Usage:
        manager = CrowdTaskManager(CrowdFlowerClient(api_key), session, settings)
        job_id = manager.upload_entity_task(template, documents, golds)
        ...
        result = manager.import_entities(job_id, documents, "NE")
        session.commit()
    """

    def __init__(
        self,
        transport: CrowdTransport,
        session: Session,
        settings: Settings,
        config: CrowdConfig | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            transport: The crowd provider
            session: SQLAlchemy session
            settings: Runtime settings

        Keyword Args:
            config: The crowd configuration.  Loaded from the file named in
                ``settings`` if not given.

        """
        #: The crowd provider.
        self.transport = transport
        #: The SQLAlchemy session.
        self.session = session
        #: The crowd configuration.
        self.config = config or settings.load_crowd_config()
        #: Generates the entity detection data.
        self.generator = TaskDataGenerator(session, self.config.texts)
        #: Aggregates the workers' judgments.
        self.aggregator = JudgmentAggregator(settings.votes_needed)

    def create_job(self, template: str) -> CrowdJob:
        """
        Create an empty job restricted to the configured countries.

        Args:
            template: The job settings as JSON text

        Returns:
            The new job

        """
        job = self.transport.create_job(json.loads(template))
        job.included_countries = list(self.config.allowed_countries)
        self.transport.update_allowed_countries(job)
        return job

    def upload_entity_task(  # noqa: PLR0913
        self,
        template: str,
        documents: Sequence[Document],
        golds: Sequence[Document],
        use_sents: int | None = None,
        use_gold_sents: int | None = None,
    ) -> str:
        """
        Create an entity detection job with the sentences of ``documents``,
        mixed with gold sentences from ``golds``.

        Gold data is generated first, with token indices starting at 0; the
        normal data continues where the gold data stopped.

        Args:
            template: The job settings as JSON text
            documents: The documents to annotate
            golds: Documents with known named entities

        Keyword Args:
            use_sents: Maximum number of sentences to upload; None for all
            use_gold_sents: Maximum number of gold sentences; None for all

        Returns:
            The job ID

        Raises:
            TransportFailure: If the provider cannot be reached
            MappingInconsistency: If a gold entity is not aligned to tokens

        """
        gold = self.generator.generate(
            golds, start_index=0, generate_gold=True, limit=use_gold_sents
        )
        normal = self.generator.generate(
            documents, start_index=gold.next_index, limit=use_sents
        )
        records = [record.to_payload() for record in gold.records + normal.records]
        logger.info(
            "entity task data generated",
            gold=len(gold.records),
            records=len(normal.records),
        )

        job = self.create_job(template)
        self.transport.upload_data(job, records)
        logger.info("entity task uploaded", job_id=job.id)
        return str(job.id)

    def upload_classification_task(
        self, template: str, job_id: str
    ) -> ClassificationUpload:
        """
        Create a classification job for the entities found by job ``job_id``.

        Args:
            template: The job settings as JSON text
            job_id: The ID of the entity detection job

        Returns:
            The new job's ID, and the stage one lines and markers that were
            left out

        Raises:
            TransportFailure: If the provider cannot be reached or the results
                of ``job_id`` are not ready

        """
        with job_context(job_id):
            result = self.aggregator.aggregate(self.retrieve_raw_judgments(job_id))
            records, skipped = self.aggregator.build_classification_tasks(
                result, self.config.labels, self.config.texts
            )
        field_name = self.config.classification_field
        payload = [record.to_payload(field_name) for record in records]

        job = self.create_job(template)
        self.transport.upload_data(job, payload)
        upload = ClassificationUpload(
            job_id=str(job.id), records=len(payload), skipped=result.skipped + skipped
        )
        logger.info(
            "classification task uploaded",
            job_id=upload.job_id,
            source_job_id=job_id,
            records=upload.records,
            skipped=len(upload.skipped),
        )
        return upload

    def retrieve_raw_judgments(self, job_id: str) -> list[str]:
        """
        Get the judgment lines of a job.

        Args:
            job_id: The job ID

        Returns:
            The lines of the job's JSON report

        Raises:
            TransportFailure: If the provider cannot be reached or has no data
                yet

        """
        logger.info("retrieving raw judgments", job_id=job_id)
        raw = self.transport.retrieve_raw_judgments(job_id)
        if not raw:
            msg = (
                f"No data retrieved for job #{job_id}. The provider might need "
                "more time to prepare your data, try again in one minute."
            )
            raise TransportFailure(msg)
        logger.info("raw judgments retrieved", job_id=job_id, chars=len(raw))
        return raw.splitlines()

    def import_entities(
        self, job_id: str, documents: Sequence[Document], label: str
    ) -> ImportResult:
        """
        Store the entities the workers of an entity detection job agreed on.

        Args:
            job_id: The job ID
            documents: The documents the job was created from, in upload order
            label: The label to give the new spans

        Returns:
            The spans and the skipped records

        """
        with job_context(job_id):
            result = self.aggregator.aggregate(self.retrieve_raw_judgments(job_id))
            store = SpanStore.for_named_entity(self.session)
            imported = self.aggregator.materialize(result, documents, label, store)
        imported.skipped[:0] = result.skipped
        return imported

    def import_classifications(
        self, job_id: str, documents: Sequence[Document]
    ) -> ImportResult:
        """
        Store the typed entities of a classification job.

        Args:
            job_id: The job ID
            documents: The documents the job was created from, in upload order

        Returns:
            The spans and the skipped records

        """
        with job_context(job_id):
            return self.aggregator.import_classifications(
                self.retrieve_raw_judgments(job_id),
                documents,
                SpanStore.for_named_entity(self.session),
                self.config.labels,
                self.config.classification_field,
            )

    def status_string(self, job_id1: str | None, job_id2: str | None = None) -> str:
        """
        Describe the progress of the workflow.

        Args:
            job_id1: ID of the entity detection job, if uploaded

        Keyword Args:
            job_id2: ID of the classification job, if uploaded

        Returns:
            A human readable status

        """
        if not job_id1 and not job_id2:
            return "No jobs uploaded."
        if job_id2:
            return f"Job2 #{job_id2} uploaded. {self._describe(job_id2, 'Job2')}"

        status = self._describe(str(job_id1), "Job1")
        if status.endswith(" finished."):
            return f"{status} You can continue with task 2."
        return status

    def _describe(self, job_id: str, name: str) -> str:
        try:
            status = self.transport.get_status(job_id)
        except TransportFailure as e:
            logger.warning("status unavailable", job_id=job_id, error=str(e))
            return "Error retrieving status"
        if not status or "count" not in status or "done" not in status:
            return "Error retrieving status"
        if status["done"]:
            return f"{name} has {status['count']} uploaded units and is finished."
        return (
            f"{name} has {status['count']} uploaded units and is not yet finished. "
            f"Check {self.job_url(job_id)} for more information."
        )

    def job_url(self, job_id: str) -> str:
        """
        Get the human facing URL of a job.

        Args:
            job_id: The job ID

        Returns:
            The URL

        """
        return self.config.job_url.format(job_id=job_id)
