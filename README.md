# impersonate-service

A small HTTP service that carries out HTTP requests on your behalf through the
curl-impersonate wrapper scripts, so that the outgoing TLS and HTTP/2
fingerprints match those of a real browser. You send a JSON description of
the request and get back a JSON document with the status, headers, body and
timings.

## Installation

```
pip install .
```

The curl-impersonate wrapper scripts must be installed in `/usr/local/bin`.
At start-up the service checks that `/usr/local/bin/curl_chrome116` and
`/usr/local/bin/curl_ff109` exist and exits if either is missing.

## Running

```
TOKEN=token impersonate-service
```

The command takes no options besides `--help`; it is configured through
environment variables. It listens on all interfaces and stops cleanly on
SIGINT or SIGTERM.

| Variable                 | Default                           | Use                                                     |
|--------------------------|-----------------------------------|---------------------------------------------------------|
| `TOKEN`                  | (required)                        | Token clients must present                              |
| `PORT`                   | `8080`                            | Port to listen on                                       |
| `LOG_LEVEL`              | `info`                            | Read and reported at start-up                           |
| `MAX_REQUEST_BODY_SIZE`  | `10485760`                        | Bytes of a request body that are read                   |
| `MAX_RESPONSE_BODY_SIZE` | `52428800`                        | Read into the configuration                             |
| `MAX_TIMEOUT`            | `120`                             | Largest timeout a client may ask for, in seconds        |
| `DEFAULT_TIMEOUT`        | `30`                              | Read into the configuration                             |
| `BROWSERS_JSON_PATH`     | `/etc/impersonate/browsers.json`  | Catalogue of browser profiles                           |

Integer variables that do not parse as integers fall back to their defaults.
Connections time out after `MAX_TIMEOUT + 10` seconds.

### The browser catalogue

```json
{
  "browsers": [
    {
      "name": "chrome116",
      "browser": {"name": "chrome", "version": "116.0", "os": "win10"},
      "binary": "curl-impersonate-chrome",
      "wrapper_script": "curl_chrome116"
    }
  ]
}
```

`wrapper_script` names the script in `/usr/local/bin` that is run for that
profile. `browser` may also carry a `device`.

## Endpoints

* `/health`: no authentication. Returns `{"status":"ok","version":"1.0.0"}`.
* `/browsers`: the browser profiles, the aliases (`chrome-latest` → `chrome116`,
  `firefox-latest` → `ff117`, `edge-latest` → `edge101`,
  `safari-latest` → `safari15_5`) and the default profile (`chrome116`).
* `/metrics`: uptime, request counts, average duration in milliseconds and
  per-browser usage.
* `/impersonate`: performs the request described by the JSON body.

Protected endpoints accept a `?token=token` query parameter or an
`Authorization: Bearer token` header; the query parameter is checked first.
A missing or wrong token gives status 401 with `"error_type": "auth"`. Any
other path gives 404. Every response carries CORS headers and an
`X-Request-ID`; `OPTIONS` requests are answered with 204. Each request is
logged with its id, method, path, status and duration.

### Example

```
curl -X POST http://localhost:8080/impersonate \
  -H "Authorization: Bearer token" \
  -d '{"browser": "chrome-latest", "url": "https://example.com", "query_params": {"q": "test"}}'
```

Request fields: `browser` (an alias or profile name; empty means the default),
`url` (required), `method` (default `GET`), `headers`, `query_params`
(replacing parameters of the same name in the URL), `body` or `body_base64`
(not both), `follow_redirects` (default `true`) and `timeout` (default 30
seconds, at most `MAX_TIMEOUT`). Invalid JSON, a failed check or an unknown
browser gives status 400 with `"error_type": "validation"`; a request that
cannot be run, such as a bad base64 body, gives 500 with
`"error_type": "internal"`.

Once the request has been attempted the reply has status 200. If the wrapper
script fails, the reply has `"success": false`, the script's output as
`error`, and an `error_type` of `timeout`, `dns`, `ssl` or `network`. Text
bodies (no content type, `text/*`, JSON, XML, JavaScript, form data) are
returned as they are; other bodies are base64-encoded and `body_base64` is
`true`. Empty fields are left out of the reply.

## Using it as a library

* `impersonate_service.config.load(environ)` builds a `Config` from a mapping
  (the process environment by default) and raises `ValueError` without `TOKEN`.
* `impersonate_service.models.BrowserCatalog.load(path)` reads a catalogue.
* `impersonate_service.server.build_application(config, catalog, collector)`
  returns the WSGI application with the CORS and logging layers; serve it with
  any WSGI server.
* `impersonate_service.app.ServiceApp(config, catalog, collector, executor)`
  is the bare application; `executor` replaces the function that runs requests.
* `impersonate_service.executor.execute(request, browser_config, bin_dir)`
  runs one request; `build_curl_args`, `parse_success_response` and
  `parse_error_response` are its parts.
* `impersonate_service.metrics.Collector` counts requests; `snapshot()`
  returns a `MetricsSnapshot`.

## Limitations

* Requests are always carried out by starting the wrapper script as a child
  process; there is no in-process use of a curl library.
* `MAX_RESPONSE_BODY_SIZE` is not enforced, and `DEFAULT_TIMEOUT` is not
  applied: a request without a timeout uses 30 seconds.
* `LOG_LEVEL` is only reported; logging always runs at the info level.
* `final_url` is the requested URL after query parameters are merged, not the
  URL reached after redirects.