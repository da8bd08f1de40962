# phrasedrill

phrasedrill is a small HTTP API for learning foreign words and phrases.
A user registers, signs in to get a bearer token, and then keeps a list of
phrases, each with the translation they expect. To practise a phrase, the
user submits a translation and the server says whether it matches.
Translations are stored in MongoDB. Redis caches lists and single entries
for 60 seconds.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Configuration

On startup the server reads a config file and a `.env` file from the
working directory. `--config` takes a file, or a directory that holds
`config.yml`, `config.yaml` or `config.json`. The default is the
`configs` directory. Keys are matched without regard to case. The server
stops if it cannot find `.env`. A typical configuration:

```yaml
port: "8080"

db:
  uri: "mongodb://localhost:27017"
  dbname: "phrasedrill"

redis:
  addr: "localhost:6379"
  password: ""
  db: 0
```

The server also stops at startup, with a non-zero exit status, if it cannot
read the config or reach MongoDB or Redis. User accounts are stored in the
`users` collection and phrases in the `translations` collection. The server
writes its log to stderr as JSON lines.

## Running

```
phrasedrill
phrasedrill --config path/to/config.yml
```

The server listens on every interface, at the configured `port`. Ctrl-C
stops it.

## API

Every route sits under `/api`. Routes under `/api/translations` need an
`Authorization: Bearer token` header, where the word after `Bearer` is the
token that sign-in returned. Every response carries permissive CORS headers.
An `OPTIONS` request gets `204` and no body.

| Method | Path                              | Purpose                                         |
|--------|-----------------------------------|-------------------------------------------------|
| POST   | `/api/auth/sign-up`               | create a user (`name`, `username`, `password`)  |
| POST   | `/api/auth/sign-in`               | get a token (`username`, `password`)            |
| POST   | `/api/translations/`              | add a phrase (`phrase`, `expected_translation`) |
| GET    | `/api/translations/?limit=N`      | list your phrases                               |
| GET    | `/api/translations/<id>`          | fetch one phrase                                |
| PUT    | `/api/translations/<id>`          | check a translation (`translation`, `done`)     |
| DELETE | `/api/translations/<id>`          | delete one phrase                               |
| POST   | `/api/translations/post100`       | seed 100 sample phrases                         |
| POST   | `/api/translations/post100k`      | seed 100 000 sample phrases                     |
| DELETE | `/api/translations/delete_all`    | delete all your phrases                         |

Notes:

- Sign-in returns `{"token": "Bearer ..."}`. The token lasts 12 hours.
  Passwords are stored as a salted SHA-1 hash.
- The list and single-entry responses include `source` and `duration_ms`.
  `source` is `cache` or `db`, and `duration_ms` is how long the request
  took to handle.
- `PUT` returns `{"status": "ok", "correct": true, "done": true}` when the
  translation matches, and sets the stored `done` flag from the `done` field
  of the request. When the translation is missing or wrong, it returns
  `status: "incorrect"` with `message`, `expected` and `submitted`, and
  nothing is stored.
- `post100k` reports `count` and `errors`. `delete_all` reports `deleted`.
- Changes clear the cached single entry. Cached lists are keyed by limit,
  so a list can lag behind changes for up to 60 seconds.

Example session:

```
curl -X POST localhost:8080/api/auth/sign-up \
     -H 'Content-Type: application/json' \
     -d '{"name": "Jane", "username": "jane", "password": "password"}'

curl -X POST localhost:8080/api/auth/sign-in \
     -H 'Content-Type: application/json' \
     -d '{"username": "jane", "password": "password"}'
# {"token": "Bearer ..."}

curl localhost:8080/api/translations/ -H 'Authorization: Bearer token'
```

## Using it as a library

The application is built in layers, and each layer wraps the one below it:

- `phrasedrill.repository.Repository` holds the storage. It takes a
  pymongo client, a database name, the users collection name and a cache
  such as `RedisRepo.connect(addr, password, db)`. `connect_mongo` opens a
  client and checks that the server answers.
- `phrasedrill.service.Service` takes a repository and provides
  `authorisation` (an `AuthService`) and `translation` (a
  `TranslationService`).
- `phrasedrill.handler.Handler` takes a service.
  `Handler.init_routes()` returns a Flask application.
- `phrasedrill.server.Server().run(port, app)` serves any WSGI application
  until another thread calls `shutdown()`. While it runs, `Server.port`
  gives the bound port. `load_config(path)` reads a config file as
  described above.

## What it does not do

The server does not serve an interactive API documentation page. Token
signing uses a fixed built-in key, and the server cannot be configured to
use another one.