def test_request_id_header_is_present(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers.get("X-Request-ID")


def test_incoming_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert response.headers.get("X-Request-ID") == "trace-123"


def test_metrics_endpoint_returns_prometheus_text(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")
    body = response.text
    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "booking_request_transitions_total" in body
    assert "booking_slot_conflicts_total" in body
    assert "push_delivery_failures_total" in body


def test_metrics_label_routes_by_template(client):
    client.get("/requests/12345")
    body = client.get("/metrics").text

    assert 'path="/requests/{request_id}"' in body
    assert 'path="/requests/12345"' not in body
