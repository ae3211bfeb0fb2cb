# gamebase

Building blocks for a gaming community message board, using only the
standard library at run time.

## What is in it

- **Response codes** (`gamebase.codes`): the business status codes a board
  API answers with (`ResCode`, whose `msg()` gives the message text), the
  response envelope (`ResponseData` with `to_dict()`, and the helpers
  `response_success`, `response_error`, `response_error_with_msg`), paging
  defaults (`parse_page_info`) and lookup of the logged-in user id from a
  request context mapping (`current_user_id`, which raises
  `NotLoggedInError` when there is none).
- **Post ranking and votes** (`gamebase.redis_store`): `PostStore` is an
  in-memory store with sorted-set semantics and key expiry. It keeps posts
  ordered by time and by score, globally and per community
  (`post_ids_in_order`, `community_post_ids_in_order` with `Order.TIME` or
  `Order.SCORE`), records votes (`vote_for_post`; voting twice the same way
  withdraws the vote, and a post older than one week raises
  `VoteTimeExpiredError`), counts up votes (`post_vote_data`), stores the
  last 20 messages of assistant chat sessions for a day (`SessionMessage`,
  `save_session_messages`, `get_session_messages`) and rebuilds every score
  from AI ratings, comment counts and votes (`rebuild_scores`).
  `compute_post_score` gives the score formula on its own.
- **Seed-article crawler** (`gamebase.crawler`): fetches the public
  Teamfight Tactics patch-note and season overview pages, pulls out titles,
  descriptions, key points and links to composition data sites
  (`CrawlSource`, `parse_source`), and composes three guide articles from
  them (`SeedArticle`, `build_seed_articles`).
- **Retrieval-augmented chat** (`gamebase.ragchat`): `RAGChat` builds a
  retrieval query from recent history, calls a retriever you supply, renders
  a system prompt holding the retrieved snippets within a character budget,
  and streams an answer from a chat model. Without a model of your own it
  posts to an OpenAI-compatible `/chat/completions` endpoint at the
  configured `base_url` (`RAGChatConfig`). Results come back with the hits
  (`RAGHit`); failures raise `RAGChatError`.
- **Vector search helpers** (`gamebase.vector_search`): configuration
  checks (`MilvusConfig`, `validate_config`), chunk keys
  (`build_chunk_id`, `chunk_delete_expr`), dense index and search parameter
  choices (`build_dense_index`, `build_search_param`), candidate counts
  (`resolve_top_k`, `search_limit`), schema checks (`validate_schema`,
  raising `SchemaError`), per-post hit de-duplication
  (`deduplicate_hits_by_post`) and diagnostic listings (`format_hits`).

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

Paging falls back to page 1 with 10 items when a value is missing or not a
number:

```python
from gamebase.codes import parse_page_info

parse_page_info("", "5")   # (1, 5)
```

A post's ranking score adds its AI rating, 128 points per comment and 432
points per net up-vote:

```python
from gamebase.redis_store import compute_post_score

compute_post_score(0, 2, 3, 1)   # 1120.0
```

Voting and ranking:

```python
from gamebase.redis_store import Order, PostStore

store = PostStore()
store.create_post(1, community_id=7)
store.create_post(2, community_id=7)
store.vote_for_post("100", "2", 1)
store.post_ids_in_order(Order.SCORE, page=1, size=10)   # ["2", "1"]
```

Chunks in the vector store are keyed by post and chunk number:

```python
from gamebase.vector_search import build_chunk_id

build_chunk_id(42, 3)   # "42_3"
```

Crawled HTML is reduced to plain text:

```python
from gamebase.crawler import clean_text

clean_text("<p>Hello&nbsp;<b>world</b></p>")   # "Hello world"
```

## Command line

The crawler gathers the latest patch notes and season overview and prints
the guide articles built from them:

```
gamebase-tft-crawler --help
gamebase-tft-crawler --max-posts 2 --output articles.json
```

`--max-posts` (default 3) limits how many articles are produced; `--output`
also writes them to a JSON file.

## What it does not do

- There is no web server and no HTTP routes; `gamebase.codes` only builds
  the response envelopes such a server would send.
- There is no database layer: users, posts, comments and communities are
  not stored anywhere, and the crawler prints or saves articles rather than
  posting them.
- `PostStore` holds its data in process memory; it is not a client for an
  external key-value server and nothing persists across runs.
- `gamebase.vector_search` does not connect to a vector database; it
  provides the configuration, schema, index and result-handling logic only.
- No embedding model is included; `RAGChat` needs a retriever to be passed
  in.