import unittest
from unittest.mock import patch

from botocore.exceptions import ClientError, EndpointConnectionError

from bucketfs.config import SourceConfig
from bucketfs.errors import InconsistentStateError, NotFoundError, StoreError
from bucketfs.store import S3Connection, S3Container


def _client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Body:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.closed = False

    def read(self) -> bytes:
        return self.data

    def close(self) -> None:
        self.closed = True


class _StubClient:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.pages: list[dict] = []
        self.list_calls: list[dict] = []
        self.put_calls: list[dict] = []
        self.failures: dict[str, Exception] = {}
        self.region = None
        self.access_blocks: dict[str, object] = {}
        self.buckets: list[str] = []

    def _maybe_fail(self, operation: str) -> None:
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def list_objects_v2(self, **kwargs):
        self._maybe_fail("list_objects_v2")
        self.list_calls.append(kwargs)
        return self.pages[len(self.list_calls) - 1]

    def head_object(self, Bucket, Key):
        self._maybe_fail("head_object")
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        return {}

    def get_object(self, Bucket, Key):
        self._maybe_fail("get_object")
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": _Body(self.objects[Key])}

    def put_object(self, **kwargs):
        self._maybe_fail("put_object")
        self.put_calls.append(kwargs)
        self.objects[kwargs["Key"]] = kwargs["Body"]

    def delete_object(self, Bucket, Key):
        self._maybe_fail("delete_object")
        self.objects.pop(Key, None)

    def copy_object(self, Bucket, Key, CopySource):
        self._maybe_fail("copy_object")
        if CopySource["Key"] not in self.objects:
            raise _client_error("NoSuchKey", "CopyObject")
        self.objects[Key] = self.objects[CopySource["Key"]]

    def get_bucket_location(self, Bucket):
        return {"LocationConstraint": self.region}

    def list_buckets(self):
        self._maybe_fail("list_buckets")
        return {"Buckets": [{"Name": name} for name in self.buckets]}

    def get_public_access_block(self, Bucket):
        block = self.access_blocks.get(Bucket)
        if isinstance(block, Exception):
            raise block
        return {"PublicAccessBlockConfiguration": block or {}}


class TestS3Container(unittest.TestCase):
    def setUp(self) -> None:
        self.client = _StubClient()
        self.container = S3Container(self.client, "media")

    def test_list_by_prefix_follows_continuation(self) -> None:
        self.client.pages = [
            {
                "Contents": [{"Key": "a/"}, {"Key": "a/1.jpg"}],
                "IsTruncated": True,
                "NextContinuationToken": "next",
            },
            {"Contents": [{"Key": "a/2.jpg"}], "IsTruncated": False},
        ]
        keys = self.container.list_by_prefix("a/")
        self.assertEqual(keys, ["a/", "a/1.jpg", "a/2.jpg"])
        self.assertEqual(self.client.list_calls[0]["Prefix"], "a/")
        self.assertNotIn("Delimiter", self.client.list_calls[0])
        self.assertEqual(self.client.list_calls[1]["ContinuationToken"], "next")

    def test_list_root_sends_no_prefix(self) -> None:
        self.client.pages = [{"IsTruncated": False}]
        self.assertEqual(self.container.list_by_prefix(None), [])
        self.assertNotIn("Prefix", self.client.list_calls[0])

    def test_list_failure_is_store_error(self) -> None:
        self.client.failures["list_objects_v2"] = _client_error("AccessDenied")
        with self.assertRaises(StoreError):
            self.container.list_by_prefix("a/")

    def test_exists(self) -> None:
        self.client.objects["a.txt"] = b""
        self.assertTrue(self.container.exists("a.txt"))
        self.assertFalse(self.container.exists("b.txt"))

    def test_exists_propagates_other_errors(self) -> None:
        self.client.failures["head_object"] = _client_error("403")
        with self.assertRaises(StoreError):
            self.container.exists("a.txt")

    def test_read_missing_object_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.container.read_object("missing.txt")

    def test_read_object_closes_body(self) -> None:
        self.client.objects["a.txt"] = b"hi"
        self.assertEqual(self.container.read_object("a.txt"), b"hi")

    def test_write_object_sets_content_type(self) -> None:
        self.container.write_object("d/", b"", "application/directory")
        self.assertEqual(self.client.put_calls[0]["ContentType"], "application/directory")
        self.assertEqual(self.client.put_calls[0]["Bucket"], "media")

    def test_move_object_copies_then_deletes(self) -> None:
        self.client.objects["a.txt"] = b"data"
        self.container.move_object("a.txt", "b/a.txt")
        self.assertEqual(self.client.objects, {"b/a.txt": b"data"})

    def test_move_object_failed_delete_is_inconsistent(self) -> None:
        self.client.objects["a.txt"] = b"data"
        self.client.failures["delete_object"] = _client_error("AccessDenied")
        with self.assertRaises(InconsistentStateError) as ctx:
            self.container.move_object("a.txt", "b.txt")
        self.assertEqual(ctx.exception.destination, "b.txt")
        self.assertEqual(set(self.client.objects), {"a.txt", "b.txt"})

    def test_move_object_failed_copy_leaves_source(self) -> None:
        self.client.objects["a.txt"] = b"data"
        self.client.failures["copy_object"] = _client_error("AccessDenied")
        with self.assertRaises(StoreError):
            self.container.move_object("a.txt", "b.txt")
        self.assertEqual(self.client.objects, {"a.txt": b"data"})

    def test_public_base_url_from_region(self) -> None:
        self.client.region = "eu-west-1"
        self.assertEqual(
            self.container.public_base_url, "https://media.s3.eu-west-1.amazonaws.com"
        )

    def test_public_base_url_default_region(self) -> None:
        self.assertEqual(self.container.public_base_url, "https://media.s3.amazonaws.com")

    def test_public_base_url_with_endpoint(self) -> None:
        container = S3Container(self.client, "media", endpoint_url="http://localhost:9000/")
        self.assertEqual(container.public_base_url, "http://localhost:9000/media")


class TestS3Connection(unittest.TestCase):
    def test_public_containers_respect_access_block(self) -> None:
        client = _StubClient()
        client.buckets = ["open", "locked", "partial"]
        client.access_blocks = {
            "open": _client_error("NoSuchPublicAccessBlockConfiguration"),
            "locked": {"BlockPublicPolicy": True, "RestrictPublicBuckets": True},
            "partial": {"BlockPublicPolicy": True, "RestrictPublicBuckets": False},
        }
        connection = S3Connection(SourceConfig())
        connection._client = client
        self.assertEqual(connection.list_public_containers(), ["open", "partial"])

    def test_list_failure_is_store_error(self) -> None:
        client = _StubClient()
        client.failures["list_buckets"] = EndpointConnectionError(endpoint_url="http://x")
        connection = S3Connection(SourceConfig())
        connection._client = client
        with self.assertRaises(StoreError):
            connection.list_public_containers()

    def test_get_container_requires_name(self) -> None:
        with self.assertRaises(NotFoundError):
            S3Connection(SourceConfig()).get_container("")

    def test_client_uses_profile_and_endpoint(self) -> None:
        config = SourceConfig(
            profile="media", region="eu-west-1", endpoint_url="http://localhost:9000"
        )
        with patch("bucketfs.store.boto3.session.Session") as session_cls:
            client = S3Connection(config).client()
        session_cls.assert_called_once_with(profile_name="media")
        session_cls.return_value.client.assert_called_once_with(
            "s3", region_name="eu-west-1", endpoint_url="http://localhost:9000"
        )
        self.assertIs(client, session_cls.return_value.client.return_value)

    def test_client_uses_static_keys(self) -> None:
        config = SourceConfig(access_key_id="AKIA", secret_access_key="secret")
        with patch("bucketfs.store.boto3.session.Session") as session_cls:
            connection = S3Connection(config)
            connection.client()
            connection.client()
        session_cls.assert_called_once_with(
            aws_access_key_id="AKIA", aws_secret_access_key="secret"
        )


if __name__ == "__main__":
    unittest.main()
