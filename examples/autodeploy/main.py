"""HTTP Cloud Function that greets the caller."""

import functions_framework


@functions_framework.http
def hello_http(request):
    """Respond with a greeting for the ``name`` sent by the caller.

    The name is read from a JSON body, then a form-encoded body, then the
    query string.

    Args:
        request: The flask.Request for this invocation

    Returns:
        ``"Yo, <name>!"`` as text/plain, greeting ``World`` when no name is sent
    """
    payload = request.get_json(silent=True)
    name = payload.get("name") if isinstance(payload, dict) else None
    name = name or request.form.get("name") or request.args.get("name") or "World"
    return f"Yo, {name}!", 200, {"Content-Type": "text/plain; charset=utf-8"}
