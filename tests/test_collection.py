from __future__ import annotations

from datetime import date

import orjson
import pytest
from pydantic import BaseModel, Field

from gitdantic import Blob, Client, MemoryGateway
from gitdantic.codecs import JsonCodec
from gitdantic.exceptions import ConflictError, DecodeError, NotFoundError


class BlogPost(BaseModel):
    title: str
    date: date
    tags: list[str] = []
    draft: bool = False
    content: str


def make_post(title: str, day: int = 1, **kwargs) -> BlogPost:
    return BlogPost(title=title, date=date(2024, 1, day), content=f"{title} body", **kwargs)


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def client(gateway: MemoryGateway) -> Client:
    return Client("token", "octocat", "blog-db", gateway=gateway)


@pytest.mark.asyncio
async def test_collection_basic_roundtrip(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")
    assert posts.revision is None

    await posts.overwrite([make_post("First", 1), make_post("Second", 2, draft=True)])
    assert posts.revision == gateway.revision_of("posts.json")

    all_posts = await posts.order_by("date").to_list()
    assert [post.title for post in all_posts] == ["First", "Second"]

    published = await posts.filter(lambda post: not post.draft).to_list()
    assert [post.title for post in published] == ["First"]

    first = await posts.head(1).first()
    assert first is not None
    assert first.title == "First"

    last = await posts.tail(1).last()
    assert last is not None
    assert last.title == "Second"

    await posts.append(make_post("Third", 3, tags=["new"]))
    assert await posts.count() == 3
    assert gateway.commits == [("posts.json", "Overwrite"), ("posts.json", "Insert")]


@pytest.mark.asyncio
async def test_fetch_missing_collection_raises_not_found(client: Client) -> None:
    posts = client.collection(BlogPost, "never-created")

    with pytest.raises(NotFoundError):
        await posts.fetch_all()
    assert posts.revision is None


@pytest.mark.asyncio
async def test_append_preserves_order(client: Client) -> None:
    posts = client.collection(BlogPost, "posts")
    a, b, c = make_post("a", 1), make_post("b", 2), make_post("c", 3)
    await posts.overwrite([a, b])

    await posts.append(c)

    assert await posts.fetch_all() == [a, b, c]


@pytest.mark.asyncio
async def test_append_accepts_sequence(client: Client) -> None:
    posts = client.collection(BlogPost, "posts")
    await posts.overwrite([make_post("a")])

    await posts.append([make_post("b"), make_post("c")])

    titles = [post.title for post in await posts.current()]
    assert titles == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_append_creates_missing_collection(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")

    await posts.append(make_post("only"))

    assert "posts.json" in gateway.files
    assert [post.title for post in await posts.fetch_all()] == ["only"]


@pytest.mark.asyncio
async def test_overwrite_is_idempotent(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")
    documents = [make_post("a"), make_post("b")]

    await posts.overwrite(documents)
    first_revision = posts.revision
    first_content = gateway.files["posts.json"]

    await posts.overwrite(documents)

    assert posts.revision == first_revision
    assert gateway.files["posts.json"] == first_content


@pytest.mark.asyncio
async def test_overwrite_with_empty_sequence_clears_collection(client: Client) -> None:
    posts = client.collection(BlogPost, "posts")
    await posts.overwrite([make_post("a")])

    await posts.overwrite([])

    assert await posts.fetch_all() == []


@pytest.mark.asyncio
async def test_stale_revision_conflicts_and_leaves_content(
    client: Client, gateway: MemoryGateway
) -> None:
    posts = client.collection(BlogPost, "posts")
    await posts.overwrite([make_post("a")])
    await posts.fetch_all()
    stale = posts.revision

    # Another writer changes the file behind this handle's back.
    other = client.collection(BlogPost, "posts")
    await other.append(make_post("external"))
    remote_content = gateway.files["posts.json"]

    with pytest.raises(ConflictError) as excinfo:
        await posts.overwrite([make_post("mine")])

    assert excinfo.value.expected_revision == stale
    assert posts.revision == stale
    assert gateway.files["posts.json"] == remote_content


@pytest.mark.asyncio
async def test_create_on_existing_path_conflicts(client: Client, gateway: MemoryGateway) -> None:
    gateway.files["posts.json"] = b"[]\n"
    posts = client.collection(BlogPost, "posts")

    with pytest.raises(ConflictError) as excinfo:
        await posts.overwrite([make_post("a")])

    assert excinfo.value.expected_revision is None
    assert gateway.files["posts.json"] == b"[]\n"


@pytest.mark.asyncio
async def test_first_overwrite_creates_file(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")

    await posts.overwrite([make_post("a")])

    assert posts.revision is not None
    payload = orjson.loads(gateway.files["posts.json"])
    assert payload[0]["title"] == "a"
    assert payload[0]["date"] == "2024-01-01"


@pytest.mark.asyncio
async def test_force_overwrite_wins_over_stale_revision(
    client: Client, gateway: MemoryGateway
) -> None:
    gateway.files["posts.json"] = b"[]\n"
    posts = client.collection(BlogPost, "posts")

    await posts.overwrite([make_post("winner")], force=True)

    assert [post.title for post in await posts.fetch_all()] == ["winner"]


@pytest.mark.asyncio
async def test_independent_handles_do_not_share_revision(
    client: Client, gateway: MemoryGateway
) -> None:
    first = client.collection(BlogPost, "posts")
    await first.overwrite([make_post("a")])

    second = client.collection(BlogPost, "posts")
    assert second is not first
    assert second.revision is None

    with pytest.raises(ConflictError):
        await second.overwrite([make_post("b")])

    await second.fetch_all()
    await second.overwrite([make_post("b")])
    assert second.revision == gateway.revision_of("posts.json")
    assert first.revision != second.revision


@pytest.mark.asyncio
async def test_non_array_content_raises_decode_error(
    client: Client, gateway: MemoryGateway
) -> None:
    gateway.files["posts.json"] = b'{"title": "not a list"}'
    posts = client.collection(BlogPost, "posts")

    with pytest.raises(DecodeError) as excinfo:
        await posts.fetch_all()

    assert excinfo.value.path == "posts.json"
    assert posts.revision is None


@pytest.mark.asyncio
async def test_schema_mismatch_raises_decode_error(
    client: Client, gateway: MemoryGateway
) -> None:
    gateway.files["posts.json"] = orjson.dumps(
        [{"title": "ok", "date": "2024-01-01", "content": "x"}, {"title": "missing fields"}]
    )
    posts = client.collection(BlogPost, "posts")

    with pytest.raises(DecodeError):
        await posts.fetch_all()


@pytest.mark.asyncio
async def test_ensure_creates_empty_collection(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")

    assert await posts.ensure() == []
    assert gateway.files["posts.json"].strip() == b"[]"
    assert gateway.commits == [("posts.json", "Creating Collection 'posts'")]

    await posts.append(make_post("a"))
    assert [post.title for post in await posts.ensure()] == ["a"]
    assert len(gateway.commits) == 2


@pytest.mark.asyncio
async def test_custom_commit_message(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")

    await posts.overwrite([make_post("a")], message="Seed posts")

    assert gateway.commits[-1] == ("posts.json", "Seed posts")


@pytest.mark.asyncio
async def test_query_apply_runs_without_fetching(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts")
    await posts.overwrite([make_post("a", 3), make_post("b", 1), make_post("c", 2, draft=True)])
    snapshot = await posts.current()

    newest_published = posts.filter(lambda post: not post.draft).order_by("-date").head(1)
    gateway.files.clear()

    assert [post.title for post in newest_published.apply(snapshot)] == ["a"]


def test_query_rejects_negative_sizes(client: Client) -> None:
    posts = client.collection(BlogPost, "posts")

    with pytest.raises(ValueError):
        posts.head(-1)
    with pytest.raises(ValueError):
        posts.tail(-1)


@pytest.mark.asyncio
async def test_yaml_collection_roundtrip(client: Client, gateway: MemoryGateway) -> None:
    posts = client.collection(BlogPost, "posts", format="yaml")
    assert posts.path == "posts.yaml"

    await posts.overwrite([make_post("YAML Test", 9)])

    loaded = await posts.first()
    assert loaded is not None
    assert loaded.date == date(2024, 1, 9)
    assert isinstance(loaded.date, date)


class Member(BaseModel):
    user_name: str = Field(alias="userName")


@pytest.mark.asyncio
async def test_append_twice_with_aliased_model(client: Client, gateway: MemoryGateway) -> None:
    members = client.collection(Member, "members")

    await members.append(Member(userName="octocat"))
    await members.append(Member(userName="hubot"))

    assert [member.user_name for member in await members.fetch_all()] == ["octocat", "hubot"]
    assert orjson.loads(gateway.files["members.json"])[0] == {"userName": "octocat"}


class InterleavingGateway(MemoryGateway):
    """Lets another writer commit right after each read is served."""

    def __init__(self, path: str, external: bytes, **kwargs) -> None:
        super().__init__(**kwargs)
        self.path = path
        self.external = external

    async def read(self, path: str) -> Blob:
        blob = await super().read(path)
        if path == self.path:
            self.files[path] = self.external
        return blob


@pytest.mark.asyncio
async def test_append_conflicts_when_write_lands_between_read_and_write() -> None:
    external = orjson.dumps(
        [{"title": "external", "date": "2024-01-05", "content": "theirs"}]
    )
    gateway = InterleavingGateway(
        "posts.json", external, files={"posts.json": JsonCodec(BlogPost).encode([make_post("a")])}
    )
    posts = Client("token", "octocat", "blog-db", gateway=gateway).collection(BlogPost, "posts")

    with pytest.raises(ConflictError):
        await posts.append(make_post("mine"))

    assert gateway.files["posts.json"] == external
    assert gateway.commits == []


@pytest.mark.asyncio
async def test_query_steps_run_in_chain_order(client: Client) -> None:
    posts = client.collection(BlogPost, "posts")
    await posts.overwrite([make_post("a", 3), make_post("b", 1), make_post("c", 2)])

    assert [p.title for p in await posts.head(2).order_by("date").to_list()] == ["b", "a"]
    assert [p.title for p in await posts.order_by("date").head(2).to_list()] == ["b", "c"]
    assert [p.title for p in await posts.tail(10).to_list()] == ["a", "b", "c"]
    assert await posts.tail(0).to_list() == []
