"""
Loads normalized records into the Redshift ``reports`` table.

All statements go through the Redshift Data API, which runs them
asynchronously: each statement is submitted and then polled until it reaches
a terminal status. The table is created from the static schema descriptor the
first time it is found missing.
"""

import json
import time
from dataclasses import dataclass
from importlib import resources
from typing import Any, Dict, List, Mapping, Optional, Sequence

from aws_lambda_powertools import Logger
from mypy_boto3_redshift_data import RedshiftDataAPIServiceClient
from mypy_boto3_redshift_data.type_defs import SqlParameterTypeDef

from .exceptions import WarehouseError
from .serializer import is_nested, to_insert_parameters

TERMINAL_STATUSES = ("FINISHED", "FAILED", "ABORTED")

SCALAR_TYPES = {
    "STRING": "VARCHAR(65535)",
    "TIMESTAMP": "TIMESTAMPTZ",
    "FLOAT": "DOUBLE PRECISION",
    "INTEGER": "BIGINT",
    "BOOLEAN": "BOOLEAN",
}


def load_table_schema(name: str = "reports") -> List[Dict[str, Any]]:
    """Loads a BigQuery-style field list bundled under ``schemas/``."""
    text = resources.files(__package__).joinpath("schemas", f"{name}.schema.json").read_text(encoding="utf-8")
    return json.loads(text)


def column_type(field: Mapping[str, Any]) -> str:
    if is_nested(field):
        return "SUPER"
    try:
        return SCALAR_TYPES[field["type"]]
    except KeyError:
        raise WarehouseError(f"Unsupported column type {field['type']} for {field['name']}") from None


@dataclass(frozen=True)
class WarehouseTarget:
    """
    Where records are loaded and how to connect.

    Exactly one of `workgroup_name` (Redshift Serverless) or
    `cluster_identifier` (provisioned) is expected, and for a provisioned
    cluster one of `secret_arn` or `db_user`.
    """

    database: str
    schema: str
    table: str = "reports"
    workgroup_name: Optional[str] = None
    cluster_identifier: Optional[str] = None
    secret_arn: Optional[str] = None
    db_user: Optional[str] = None

    @property
    def qualified_table(self) -> str:
        return f'"{self.schema}"."{self.table}"'

    def connection_args(self) -> Dict[str, str]:
        args = {"Database": self.database}
        if self.workgroup_name:
            args["WorkgroupName"] = self.workgroup_name
        if self.cluster_identifier:
            args["ClusterIdentifier"] = self.cluster_identifier
        if self.secret_arn:
            args["SecretArn"] = self.secret_arn
        if self.db_user:
            args["DbUser"] = self.db_user
        return args


class WarehouseLoader:
    def __init__(
        self,
        client: RedshiftDataAPIServiceClient,
        target: WarehouseTarget,
        fields: Sequence[Mapping[str, Any]],
        logger: Logger,
        poll_interval: float = 0.5,
    ):
        self.client = client
        self.target = target
        self.fields = list(fields)
        self.logger = logger
        self.poll_interval = poll_interval

    def create_table_sql(self) -> str:
        columns = ",\n  ".join(f'"{field["name"]}" {column_type(field)}' for field in self.fields)
        return f"CREATE TABLE IF NOT EXISTS {self.target.qualified_table} (\n  {columns}\n)"

    def insert_sql(self, parameters: Sequence[SqlParameterTypeDef]) -> str:
        """Builds the INSERT for one row; columns without a parameter get NULL."""
        bound = {parameter["name"] for parameter in parameters}
        values = []
        for field in self.fields:
            name = field["name"]
            if name not in bound:
                values.append("NULL")
            elif is_nested(field):
                values.append(f"JSON_PARSE(:{name})")
            else:
                values.append(f"CAST(:{name} AS {column_type(field)})")
        names = ", ".join(f'"{field["name"]}"' for field in self.fields)
        return f"INSERT INTO {self.target.qualified_table} ({names}) VALUES ({', '.join(values)})"

    def execute(self, sql: str, parameters: Optional[List[SqlParameterTypeDef]] = None) -> str:
        """
        Submits a statement and waits for it to finish.

        Returns:
            The statement id.

        Raises:
            WarehouseError: If the statement fails or is aborted.
        """
        kwargs: Dict[str, Any] = dict(self.target.connection_args(), Sql=sql)
        if parameters:
            kwargs["Parameters"] = parameters
        statement_id = self.client.execute_statement(**kwargs)["Id"]

        while True:
            description = self.client.describe_statement(Id=statement_id)
            status = description["Status"]
            if status in TERMINAL_STATUSES:
                break
            time.sleep(self.poll_interval)

        if status != "FINISHED":
            raise WarehouseError(
                f"Statement {statement_id} {status.lower()}: {description.get('Error', 'no error detail')}",
                context={"statement_id": statement_id, "status": status},
            )
        return statement_id

    def table_exists(self) -> bool:
        response = self.client.list_tables(
            SchemaPattern=self.target.schema,
            TablePattern=self.target.table,
            **self.target.connection_args(),
        )
        return any(
            table.get("name") == self.target.table and table.get("schema") == self.target.schema
            for table in response.get("Tables", [])
        )

    def ensure_table(self) -> bool:
        """
        Creates the destination table if it does not exist.

        Existence check and creation are separate calls and not atomic; the
        IF NOT EXISTS clause keeps a concurrent creator from failing.

        Returns:
            True if the table was created by this call.
        """
        if self.table_exists():
            return False
        self.logger.info(f"Creating warehouse table {self.target.qualified_table}")
        self.execute(self.create_table_sql())
        return True

    def insert_record(self, record: Mapping[str, Any]) -> bool:
        """
        Inserts one normalized record.

        Failures are logged and contained here so that they never abort the
        rest of the invocation.

        Returns:
            True if the row was inserted.
        """
        job_id = record.get("job_id")
        try:
            parameters = to_insert_parameters(record, self.fields)
            statement_id = self.execute(self.insert_sql(parameters), parameters)
        except Exception as e:
            self.logger.error(
                "Error on insert into warehouse.",
                extra={"job_id": job_id, "error_type": type(e).__name__, "error": str(e)},
            )
            return False

        self.logger.info(
            f"{record.get('site_id')}: Warehouse job with ID {job_id} finished.",
            extra={"statement_id": statement_id},
        )
        return True
