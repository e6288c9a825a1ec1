"""
Tests for the bulk payroll HTTP API.
"""
from app.models.payroll_models import JobStatus, RowStatus

PAY_DATE = "2026-03-16"


def payroll_rows(count=2, **overrides):
    rows = []
    for index in range(count):
        row = {
            "employee_id": f"EMP{index:03d}",
            "amount": "100.00",
            "currency": "usd",
            "pay_date": PAY_DATE,
        }
        row.update(overrides)
        rows.append(row)
    return rows


def upload(client, headers, rows):
    return client.post("/bulk-payroll/upload", json={"rows": rows}, headers=headers)


class TestUpload:
    """Test POST /bulk-payroll/upload."""

    def test_json_upload(self, client, auth_headers, dispatcher, repository):
        rows = payroll_rows(3)
        rows[2]["amount"] = "abc"
        response = upload(client, auth_headers(), rows)

        assert response.status_code == 202
        data = response.json()
        assert data["total_rows"] == 3
        assert data["valid_row_count"] == 2
        assert data["invalid_row_count"] == 1
        assert data["error_summary"][0]["row_index"] == 2
        assert "amount must be a valid number" in data["error_summary"][0]["error"]
        assert dispatcher.enqueued == [(data["job_id"], "user-1")]

        job = repository.get_job(data["job_id"])
        assert job.status == JobStatus.QUEUED.value
        assert job.uploader_id == "user-1"
        assert len(repository.get_rows(job.id)) == 2

    def test_csv_upload(self, client, auth_headers, dispatcher):
        content = (
            "Employee ID,Email,Salary,Currency,Payment_Date,Notes\n"
            "EMP001,,1500.00,USD,2026-03-16,\"March, salary\"\n"
            "EMP001,,1500,USD,2026-03-16,repeat\n"
            ",jane@acme.io,200,EUR,2026-03-20,\n"
        )
        response = client.post(
            "/bulk-payroll/upload",
            files={"file": ("payroll.csv", content.encode("utf-8"), "text/csv")},
            headers=auth_headers(),
        )

        assert response.status_code == 202
        data = response.json()
        assert data["total_rows"] == 3
        assert data["valid_row_count"] == 2
        assert data["error_summary"] == [
            {"row_index": 1, "error": "Duplicate of row 0", "duplicate_of_index": 0}
        ]
        assert len(dispatcher.enqueued) == 1

    def test_csv_with_byte_order_mark(self, client, auth_headers):
        content = "\ufeffemployee_id,amount,currency,pay_date\nEMP001,10,USD,2026-03-16\n"
        response = client.post(
            "/bulk-payroll/upload",
            files={"file": ("payroll.csv", content.encode("utf-8"), "text/csv")},
            headers=auth_headers(),
        )
        assert response.status_code == 202
        assert response.json()["valid_row_count"] == 1

    def test_csv_with_trailing_commas(self, client, auth_headers):
        content = (
            "employee_id,amount,currency,pay_date\n"
            "EMP001,100,USD,2026-03-16,\n"
            "EMP002,200,USD,2026-03-16,\n"
        )
        response = client.post(
            "/bulk-payroll/upload",
            files={"file": ("payroll.csv", content.encode("utf-8"), "text/csv")},
            headers=auth_headers(),
        )

        assert response.status_code == 202
        data = response.json()
        assert data["valid_row_count"] == 2
        assert data["error_summary"] == []

    def test_csv_with_extra_values(self, client, auth_headers, dispatcher):
        content = (
            "employee_id,amount,currency,pay_date\n"
            "EMP001,100,USD,2026-03-16\n"
            "EMP002,200,USD,2026-03-16,extra\n"
        )
        response = client.post(
            "/bulk-payroll/upload",
            files={"file": ("payroll.csv", content.encode("utf-8"), "text/csv")},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["message"].startswith("Malformed CSV")
        assert dispatcher.enqueued == []

    def test_empty_csv(self, client, auth_headers, dispatcher):
        response = client.post(
            "/bulk-payroll/upload",
            files={"file": ("payroll.csv", b"employee_id,amount\n", "text/csv")},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "CSV file is empty"
        assert dispatcher.enqueued == []

    def test_missing_file(self, client, auth_headers):
        response = client.post(
            "/bulk-payroll/upload",
            files={"attachment": ("payroll.csv", b"amount\n1\n", "text/csv")},
            headers=auth_headers(),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_empty_rows(self, client, auth_headers):
        response = upload(client, auth_headers(), [])
        assert response.status_code == 400
        assert response.json()["message"] == "No rows provided"

    def test_rows_not_a_list(self, client, auth_headers):
        response = upload(client, auth_headers(), {"employee_id": "EMP001"})
        assert response.status_code == 400

    def test_row_not_an_object(self, client, auth_headers):
        response = upload(client, auth_headers(), ["EMP001,100"])
        assert response.status_code == 400

    def test_too_many_rows(self, client, auth_headers, dispatcher):
        response = upload(client, auth_headers(), payroll_rows(51))

        assert response.status_code == 400
        assert response.json()["message"] == "Exceeded maximum rows per upload (50)"
        assert dispatcher.enqueued == []

    def test_unsupported_content_type(self, client, auth_headers):
        headers = {**auth_headers(), "Content-Type": "text/plain"}
        response = client.post("/bulk-payroll/upload", content=b"rows", headers=headers)
        assert response.status_code == 400

    def test_malformed_json(self, client, auth_headers):
        headers = {**auth_headers(), "Content-Type": "application/json"}
        response = client.post("/bulk-payroll/upload", content=b"{not json", headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON body"

    def test_dispatch_failure_fails_job(self, client, auth_headers, dispatcher, repository):
        dispatcher.fail = True
        response = upload(client, auth_headers(), payroll_rows(1))

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"

        jobs, total = repository.list_jobs("user-1")
        assert total == 1
        assert jobs[0].status == JobStatus.FAILED.value


class TestAuthentication:
    """Test that every payroll route requires a valid token."""

    def test_missing_token(self, client):
        response = client.get("/bulk-payroll/jobs")
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_invalid_token(self, client):
        response = client.get("/bulk-payroll/jobs", headers={"Authorization": "Bearer forged"})
        assert response.status_code == 401

    def test_upload_requires_token(self, client, dispatcher):
        response = client.post("/bulk-payroll/upload", json={"rows": payroll_rows(1)})
        assert response.status_code == 401
        assert dispatcher.enqueued == []


class TestJobs:
    """Test job listing, detail, cancel and export."""

    def test_list_jobs(self, client, auth_headers):
        for _ in range(3):
            upload(client, auth_headers(), payroll_rows(1))
        upload(client, auth_headers("user-2"), payroll_rows(1))

        response = client.get("/bulk-payroll/jobs", params={"page": 1, "limit": 2}, headers=auth_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["items"]) == 2
        assert data["items"][0]["status"] == JobStatus.QUEUED.value

    def test_list_limit_clamped(self, client, auth_headers):
        response = client.get("/bulk-payroll/jobs", params={"page": 0, "limit": 1000}, headers=auth_headers())
        data = response.json()
        assert data["page"] == 1
        assert data["limit"] == 100
        assert data["items"] == []

    def test_job_detail(self, client, auth_headers):
        rows = payroll_rows(2)
        rows.append({"employee_id": "EMP000", "amount": "100", "currency": "USD", "pay_date": PAY_DATE})
        job_id = upload(client, auth_headers(), rows).json()["job_id"]

        response = client.get(f"/bulk-payroll/jobs/{job_id}", headers=auth_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == job_id
        assert data["valid_row_count"] == 2
        assert data["invalid_row_count"] == 1
        assert data["error_summary"][0]["duplicate_of_index"] == 0
        assert [row["row_index"] for row in data["rows"]] == [0, 1]
        assert all(row["status"] == RowStatus.PENDING.value for row in data["rows"])

    def test_other_users_job_is_not_found(self, client, auth_headers):
        job_id = upload(client, auth_headers(), payroll_rows(1)).json()["job_id"]

        assert client.get(f"/bulk-payroll/jobs/{job_id}", headers=auth_headers("user-2")).status_code == 404
        assert client.post(f"/bulk-payroll/jobs/{job_id}/cancel", headers=auth_headers("user-2")).status_code == 404
        assert client.get(f"/bulk-payroll/jobs/{job_id}/rows.csv", headers=auth_headers("user-2")).status_code == 404

    def test_unknown_job(self, client, auth_headers):
        response = client.get("/bulk-payroll/jobs/missing", headers=auth_headers())
        assert response.status_code == 404
        assert response.json()["message"] == "Job not found"

    def test_cancel_queued_job(self, client, auth_headers, dispatcher, repository):
        job_id = upload(client, auth_headers(), payroll_rows(1)).json()["job_id"]

        response = client.post(f"/bulk-payroll/jobs/{job_id}/cancel", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["status"] == JobStatus.CANCELLED.value
        assert dispatcher.withdrawn == [job_id]
        assert repository.get_job(job_id).status == JobStatus.CANCELLED.value

        again = client.post(f"/bulk-payroll/jobs/{job_id}/cancel", headers=auth_headers())
        assert again.status_code == 409
        assert again.json()["code"] == "CONFLICT"

    def test_cancel_processing_job(self, client, auth_headers, dispatcher, repository):
        job_id = upload(client, auth_headers(), payroll_rows(1)).json()["job_id"]
        repository.transition_status(job_id, [JobStatus.QUEUED], JobStatus.PROCESSING)

        response = client.post(f"/bulk-payroll/jobs/{job_id}/cancel", headers=auth_headers())

        assert response.status_code == 200
        assert dispatcher.withdrawn == []

    def test_cancel_completed_job(self, client, auth_headers, repository):
        job_id = upload(client, auth_headers(), payroll_rows(1)).json()["job_id"]
        repository.transition_status(job_id, [JobStatus.QUEUED], JobStatus.COMPLETED)

        response = client.post(f"/bulk-payroll/jobs/{job_id}/cancel", headers=auth_headers())

        assert response.status_code == 409
        assert response.json()["message"] == "Cannot cancel job with status COMPLETED"

    def test_export_rows(self, client, auth_headers, repository):
        rows = payroll_rows(2, description="bonus, Q1")
        job_id = upload(client, auth_headers(), rows).json()["job_id"]
        stored = repository.get_rows(job_id)
        repository.update_row(stored[1].id, status=RowStatus.FAILED.value, attempts=3)

        response = client.get(f"/bulk-payroll/jobs/{job_id}/rows.csv", headers=auth_headers())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text == (
            "employee_id,amount,currency,pay_date,description\n"
            'EMP000,100.00,usd,2026-03-16,"bonus, Q1"\n'
            'EMP001,100.00,usd,2026-03-16,"bonus, Q1"'
        )

        failed = client.get(
            f"/bulk-payroll/jobs/{job_id}/rows.csv", params={"status": "failed"}, headers=auth_headers()
        )
        assert failed.text == (
            "employee_id,amount,currency,pay_date,description\n"
            'EMP001,100.00,usd,2026-03-16,"bonus, Q1"'
        )

    def test_export_unknown_status(self, client, auth_headers):
        job_id = upload(client, auth_headers(), payroll_rows(1)).json()["job_id"]
        response = client.get(
            f"/bulk-payroll/jobs/{job_id}/rows.csv", params={"status": "lost"}, headers=auth_headers()
        )
        assert response.status_code == 400


def test_request_id_header(client):
    response = client.get("/healthz")
    assert response.headers["X-Request-ID"]
