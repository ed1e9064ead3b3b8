"""
Todo persistence. Single-table layout: PK = TENANT#<tenant>, SK = TODO#<id>.
DynamoTodoStore talks to DynamoDB through boto3; InMemoryTodoStore mirrors its
semantics for local runs and tests.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from todo_api.errors import StoreError

logger = logging.getLogger(__name__)

TENANT_PREFIX = "TENANT#"
TODO_PREFIX = "TODO#"


def partition_key(tenant: str) -> str:
    return TENANT_PREFIX + tenant


def sort_key(todo_id: str) -> str:
    return TODO_PREFIX + todo_id


@dataclass
class TodoItem:
    tenant: str
    id: str
    title: str
    completed: bool = False

    def key(self) -> dict[str, str]:
        return {"PK": partition_key(self.tenant), "SK": sort_key(self.id)}

    def to_record(self) -> dict[str, Any]:
        return {**self.key(), "ID": self.id, "Title": self.title, "Completed": self.completed}

    @classmethod
    def from_record(cls, tenant: str, record: dict[str, Any]) -> "TodoItem":
        # Records created by an update on a missing id carry only the key and Completed.
        todo_id = record.get("ID") or str(record.get("SK", "")).removeprefix(TODO_PREFIX)
        return cls(
            tenant=tenant,
            id=str(todo_id),
            title=str(record.get("Title", "")),
            completed=bool(record.get("Completed", False)),
        )


class TodoStore(Protocol):
    def query(self, tenant: str) -> list[TodoItem]: ...

    def put(self, item: TodoItem) -> None: ...

    def update_completed(self, tenant: str, todo_id: str, completed: bool) -> None: ...

    def delete(self, tenant: str, todo_id: str) -> None: ...


class DynamoTodoStore:
    """TodoStore backed by a DynamoDB table (boto3 resource API)."""

    def __init__(self, table: Any):
        self.table = table

    @classmethod
    def from_settings(
        cls,
        table_name: str,
        region: str,
        endpoint_url: str | None = None,
        timeout: float = 5.0,
    ) -> "DynamoTodoStore":
        resource = boto3.resource(
            "dynamodb",
            region_name=region,
            endpoint_url=endpoint_url,
            config=Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 2}),
        )
        return cls(resource.Table(table_name))

    def query(self, tenant: str) -> list[TodoItem]:
        params: dict[str, Any] = {
            "KeyConditionExpression": Key("PK").eq(partition_key(tenant)) & Key("SK").begins_with(TODO_PREFIX),
        }
        items: list[TodoItem] = []
        try:
            while True:
                resp = self.table.query(**params)
                items.extend(TodoItem.from_record(tenant, r) for r in resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                params["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as e:
            logger.error("DynamoDB query failed for tenant %s: %s", tenant, e)
            raise StoreError(str(e)) from e
        return items

    def put(self, item: TodoItem) -> None:
        try:
            self.table.put_item(
                Item=item.to_record(),
                ConditionExpression=Attr("SK").not_exists(),
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("DynamoDB put_item failed: %s", e)
            raise StoreError(str(e)) from e

    def update_completed(self, tenant: str, todo_id: str, completed: bool) -> None:
        try:
            self.table.update_item(
                Key={"PK": partition_key(tenant), "SK": sort_key(todo_id)},
                UpdateExpression="SET Completed = :c",
                ExpressionAttributeValues={":c": completed},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("DynamoDB update_item failed: %s", e)
            raise StoreError(str(e)) from e

    def delete(self, tenant: str, todo_id: str) -> None:
        try:
            self.table.delete_item(Key={"PK": partition_key(tenant), "SK": sort_key(todo_id)})
        except (BotoCoreError, ClientError) as e:
            logger.error("DynamoDB delete_item failed: %s", e)
            raise StoreError(str(e)) from e


class InMemoryTodoStore:
    """Process-local TodoStore with the same key layout and semantics as DynamoDB."""

    def __init__(self):
        self._records: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def query(self, tenant: str) -> list[TodoItem]:
        pk = partition_key(tenant)
        with self._lock:
            rows = sorted(
                (sk, dict(r)) for (p, sk), r in self._records.items() if p == pk and sk.startswith(TODO_PREFIX)
            )
        return [TodoItem.from_record(tenant, r) for _, r in rows]

    def put(self, item: TodoItem) -> None:
        key = (partition_key(item.tenant), sort_key(item.id))
        with self._lock:
            if key in self._records:
                raise StoreError("The conditional request failed")
            self._records[key] = item.to_record()

    def update_completed(self, tenant: str, todo_id: str, completed: bool) -> None:
        pk, sk = partition_key(tenant), sort_key(todo_id)
        with self._lock:
            # UpdateItem upserts
            record = self._records.setdefault((pk, sk), {"PK": pk, "SK": sk})
            record["Completed"] = completed

    def delete(self, tenant: str, todo_id: str) -> None:
        with self._lock:
            self._records.pop((partition_key(tenant), sort_key(todo_id)), None)
