# tests/test_preferences.py
import pytest

from jobmatch.core.errors import ValidationError
from jobmatch.services.preferences import PreferenceModel, bump_bucket, feedback_weight, job_features


def test_feedback_weight_examples():
    assert feedback_weight("applied", 5) == pytest.approx(1.667, abs=1e-3)
    assert feedback_weight("not_interested", 1) == pytest.approx(-0.333, abs=1e-3)
    assert feedback_weight("saved") == pytest.approx(0.8)
    assert feedback_weight("dismissed", 3) == pytest.approx(-0.5)


@pytest.mark.parametrize("action,rating", [("clicked", None), ("applied", 0), ("applied", 6)])
def test_feedback_weight_rejects_bad_input(action, rating):
    with pytest.raises(ValidationError):
        feedback_weight(action, rating)


def test_bump_bucket_is_case_insensitive_and_pure():
    original = [{"value": "Warehouse", "weight": 1.0}]
    bumped = bump_bucket(original, "warehouse ", 0.5)
    assert bumped == [{"value": "Warehouse", "weight": 1.5}]
    assert original == [{"value": "Warehouse", "weight": 1.0}]
    assert bump_bucket(bumped, "", 1.0) == bumped


def test_apply_accumulates_and_goes_negative(store, factory):
    model = PreferenceModel(store)
    job = factory.job(company="Acme", salary_min=18.0, salary_max=22.0, skills=["forklift", "inventory"])

    model.apply("u1", job, feedback_weight("applied"))
    model.apply("u1", job, feedback_weight("dismissed"))
    model.apply("u1", job, feedback_weight("not_interested"))

    prefs = PreferenceModel.as_dict(model.get("u1"))
    assert prefs["job_types"] == [{"value": "warehouse", "weight": pytest.approx(-0.5)}]
    assert prefs["companies"] == [{"value": "Acme", "weight": pytest.approx(-0.5)}]
    assert [e["value"] for e in prefs["skills"]] == ["forklift", "inventory"]
    # negative signals never move the band, only its weight
    assert prefs["salary_range"]["min"] == 18.0
    assert prefs["salary_range"]["max"] == 22.0
    assert prefs["salary_range"]["weight"] == pytest.approx(-0.5)


def test_salary_band_moves_toward_positive_jobs(store, factory):
    model = PreferenceModel(store)
    model.apply("u1", factory.job(salary_min=16.0, salary_max=20.0), 1.0)
    model.apply("u1", factory.job(salary_min=20.0, salary_max=24.0), 1.0)
    band = model.get("u1").salary_range
    assert band == {"min": 18.0, "max": 22.0, "weight": 2.0}


def test_affinity_sums_matching_buckets(store, factory):
    model = PreferenceModel(store)
    liked = factory.job(company="Acme", salary_min=18.0, salary_max=22.0)
    model.apply("u1", liked, 1.0)
    pref = model.get("u1")

    # job type, industry, location, company, one skill, salary band
    assert PreferenceModel.affinity(pref, liked) == pytest.approx(6.0)
    other = factory.job(title="Cook", company="Diner", job_type="food_service", industry="hospitality",
                        location="Reno, NV", skills=["cooking"], salary_min=40.0, salary_max=50.0)
    assert PreferenceModel.affinity(pref, other) == 0.0
    assert PreferenceModel.affinity(None, liked) == 0.0


def test_repeated_job_skill_counts_once(store, factory):
    model = PreferenceModel(store)
    job = factory.job(skills=["Forklift", "forklift ", "inventory"])
    model.apply("u1", job, 1.0)

    skills = PreferenceModel.as_dict(model.get("u1"))["skills"]
    assert skills == [{"value": "Forklift", "weight": 1.0}, {"value": "inventory", "weight": 1.0}]
    assert job_features(job)["skills"] == ["Forklift", "inventory"]
