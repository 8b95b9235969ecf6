import marimo

__generated_with = "0.17.7"
app = marimo.App()


@app.cell
def _():
    from datetime import date

    from pydantic import BaseModel

    from gitdantic import Client, MemoryGateway

    return BaseModel, Client, MemoryGateway, date


@app.cell
def _(BaseModel, Client, MemoryGateway, date):
    class BlogPost(BaseModel):
        title: str
        date: date
        tags: list[str] = []
        draft: bool = False
        content: str

    # Swap the gateway out (or use Client.from_settings()) to talk to GitHub.
    client = Client("token", "octocat", "blog-db", path_prefix="db/", gateway=MemoryGateway())
    posts = client.collection(BlogPost, "posts")
    return BlogPost, posts


@app.cell
async def _(posts):
    await posts.ensure()
    return


@app.cell
def _(BlogPost):
    post = BlogPost(title="lol", date="2015-01-01", tags=[], content="i am a blogpost yay!")
    return (post,)


@app.cell
async def _(post, posts):
    await posts.append(post)
    await posts.order_by("date").to_list()
    return


if __name__ == "__main__":
    app.run()
