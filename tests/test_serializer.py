import json

from lighthouse_lambda.serializer import to_insert_parameters, to_ndjson

FIELDS = [
    {"name": "fetch_time", "type": "TIMESTAMP", "mode": "REQUIRED"},
    {"name": "emulated_as", "type": "STRING", "mode": "NULLABLE"},
    {"name": "blocked_urls", "type": "STRING", "mode": "REPEATED"},
    {"name": "seo", "type": "RECORD", "mode": "REPEATED"},
    {"name": "job_id", "type": "STRING", "mode": "REQUIRED"},
]


def test_to_ndjson_list():
    records = [{"item1": "value1"}, {"item2": "value2"}, {"item3": "value3"}]
    assert to_ndjson(records) == '{"item1":"value1"}\n{"item2":"value2"}\n{"item3":"value3"}\n'


def test_to_ndjson_single_record():
    assert to_ndjson({"a": 1}) == '{"a":1}\n'


def test_insert_parameters():
    record = {
        "fetch_time": "2018-12-17T10:56:56.420Z",
        "emulated_as": None,
        "blocked_urls": [],
        "seo": [{"total_score": 0.9, "plugins_ok": True}],
        "job_id": "job-1",
    }
    parameters = to_insert_parameters(record, FIELDS)
    assert parameters == [
        {"name": "fetch_time", "value": "2018-12-17T10:56:56.420Z"},
        {"name": "blocked_urls", "value": "[]"},
        {"name": "seo", "value": '[{"total_score":0.9,"plugins_ok":true}]'},
        {"name": "job_id", "value": "job-1"},
    ]
    assert json.loads(parameters[2]["value"])[0]["plugins_ok"] is True
