from __future__ import annotations

import os
import uuid

from dynadoc import Config, Document, Session, dynadoc_field, gsi


class Note(Document, table="notes", indexes=[gsi("by_author", partition="author", sort="rank")]):
    id: str | None = dynadoc_field(roles=["pk"])
    author: str | None = None
    rank: int | None = None
    body: str | None = None
    lock_version: int | None = dynadoc_field(roles=["version"])


def main() -> None:
    config = Config(
        namespace=f"dynadoc_example_{uuid.uuid4().hex[:12]}",
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        region=os.environ.get("AWS_REGION", "us-east-1"),
        access_key=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        secret_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
        billing_mode="PAY_PER_REQUEST",
    )
    session = Session(config=config, models=[Note])
    session.create_tables()
    notes = session.collection(Note)

    try:
        for rank in (1, 10, 100):
            notes.create_strict(author="ada", rank=rank, body=f"note {rank}")

        first = notes.where(author="ada").first()
        print("first:", first)

        if first is not None:
            notes.update_attributes_strict(first, {"body": "edited"})
            print("lock_version after save:", first.lock_version)

        print("rank > 5:", notes.where(author="ada", rank__gt=5).pluck("rank"))
    finally:
        notes.delete_table()


if __name__ == "__main__":
    main()
