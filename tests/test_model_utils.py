import math
import sys
from pathlib import Path

import pytest

np = pytest.importorskip("numpy")
pd = pytest.importorskip("pandas")
pytest.importorskip("joblib")

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from nmf_recommender import model_utils
from nmf_recommender.nmf import NMF, NMFConfig


@pytest.fixture
def ratings_df():
    return pd.DataFrame(
        [
            {"user_id": "alice", "item_id": "i1", "rating": 5},
            {"user_id": "alice", "item_id": "i2", "rating": 3},
            {"user_id": "bob", "item_id": "i2", "rating": 4},
            {"user_id": "bob", "item_id": "i3", "rating": 1},
            {"user_id": "carol", "item_id": "i1", "rating": 4},
            {"user_id": "carol", "item_id": "i4", "rating": 2},
            {"user_id": "dave", "item_id": "i3", "rating": 5},
            {"user_id": "dave", "item_id": "i4", "rating": 4},
        ]
    )


@pytest.fixture
def ratings_csv(tmp_path, ratings_df):
    path = tmp_path / "ratings.csv"
    extra = pd.DataFrame([{"user_id": "erin", "item_id": "i1", "rating": 0}])
    pd.concat([ratings_df, extra]).to_csv(path, index=False)
    return path


def test_load_ratings_drops_unobserved(ratings_csv):
    df = model_utils.load_ratings(ratings_csv)

    assert list(df.columns) == ["user_id", "item_id", "rating"]
    assert len(df) == 8
    assert "erin" not in set(df["user_id"])


def test_load_ratings_whitespace_file(tmp_path):
    path = tmp_path / "u.data"
    path.write_text("1 10 4 881250949\n1 20 0 881250950\n2 10 5 881250951\n")

    df = model_utils.load_ratings(path)
    assert df["rating"].tolist() == [4, 5]
    assert df["user_id"].tolist() == [1, 2]


def test_load_ratings_double_colon_dat(tmp_path):
    path = tmp_path / "ratings.dat"
    path.write_text("1::10::4::978300760\n1::20::5::978302109\n2::10::3::978301968\n")

    df = model_utils.load_ratings(path)
    assert df["user_id"].tolist() == [1, 1, 2]
    assert df["item_id"].tolist() == [10, 20, 10]
    assert df["rating"].tolist() == [4, 5, 3]


def test_load_ratings_text_with_header_keeps_int_ids(tmp_path):
    path = tmp_path / "ratings.tsv"
    path.write_text("user_id\titem_id\trating\n1\t10\t4\n2\t20\t5\n")

    df = model_utils.load_ratings(path)
    assert len(df) == 2
    assert df["user_id"].tolist() == [1, 2]
    assert df["item_id"].tolist() == [10, 20]


def test_load_ratings_text_needs_three_fields(tmp_path):
    short = tmp_path / "ratings.txt"
    short.write_text("1 10\n2 20\n")
    with pytest.raises(model_utils.MissingDataError, match="ratings.txt"):
        model_utils.load_ratings(short)

    empty = tmp_path / "empty.dat"
    empty.write_text("")
    with pytest.raises(model_utils.MissingDataError):
        model_utils.load_ratings(empty)


def test_load_ratings_errors(tmp_path):
    with pytest.raises(model_utils.MissingDataError):
        model_utils.load_ratings(tmp_path / "nope.csv")

    bad = tmp_path / "bad.csv"
    pd.DataFrame([{"user": 1, "item": 2, "score": 3}]).to_csv(bad, index=False)
    with pytest.raises(model_utils.MissingDataError):
        model_utils.load_ratings(bad)

    empty = tmp_path / "empty.csv"
    pd.DataFrame([{"user_id": 1, "item_id": 2, "rating": 0}]).to_csv(empty, index=False)
    with pytest.raises(model_utils.MissingDataError):
        model_utils.load_ratings(empty)

    other = tmp_path / "ratings.json"
    other.write_text("{}")
    with pytest.raises(ValueError):
        model_utils.load_ratings(other)


def test_encode_ratings_builds_user_item_matrix(ratings_df):
    matrix, u_codes, i_codes = model_utils.encode_ratings(ratings_df)

    assert matrix.shape == (4, 4)
    assert matrix.size() == 8
    assert u_codes == {"alice": 0, "bob": 1, "carol": 2, "dave": 3}
    assert matrix.row(u_codes["bob"]).index.tolist() == [i_codes["i2"], i_codes["i3"]]


def test_encode_ratings_skips_unknown_ids(ratings_df):
    _, u_codes, i_codes = model_utils.encode_ratings(ratings_df)
    test = pd.DataFrame(
        [
            {"user_id": "alice", "item_id": "i3", "rating": 2},
            {"user_id": "zoe", "item_id": "i1", "rating": 5},
            {"user_id": "bob", "item_id": "i9", "rating": 5},
        ]
    )

    matrix, _, _ = model_utils.encode_ratings(test, u_codes, i_codes)
    assert matrix.shape == (4, 4)
    assert list(matrix) == [(0, i_codes["i3"], 2.0)]


def test_encode_ratings_keeps_last_rating_for_rerated_cell():
    df = pd.DataFrame(
        [
            {"user_id": "a", "item_id": "x", "rating": 4},
            {"user_id": "a", "item_id": "y", "rating": 2},
            {"user_id": "a", "item_id": "x", "rating": 5},
        ]
    )

    matrix, u_codes, i_codes = model_utils.encode_ratings(df)

    assert matrix.size() == 2
    row = dict(matrix.row(u_codes["a"]))
    assert row[i_codes["x"]] == 5.0
    assert row[i_codes["y"]] == 2.0


def test_split_ratings_partitions_rows(ratings_df):
    train, test = model_utils.split_ratings(ratings_df, test_ratio=0.25, random_state=1)

    assert len(train) == 6
    assert len(test) == 2
    merged = pd.concat([train, test]).sort_values(["user_id", "item_id"]).reset_index(drop=True)
    expected = ratings_df.sort_values(["user_id", "item_id"]).reset_index(drop=True)
    pd.testing.assert_frame_equal(merged, expected)

    with pytest.raises(ValueError):
        model_utils.split_ratings(ratings_df, test_ratio=1.0)


def test_evaluate_matches_training_error(ratings_df):
    matrix, _, _ = model_utils.encode_ratings(ratings_df)
    model = NMF(matrix, NMFConfig(num_factors=2, num_iters=10)).fit()

    metrics = model_utils.evaluate(model, matrix)

    assert metrics["count"] == 8
    assert metrics["RMSE"] == pytest.approx(math.sqrt(2 * model.errs / 8))
    assert metrics["MAE"] <= metrics["RMSE"] + 1e-12


def test_evaluate_without_entries(ratings_df):
    matrix, u_codes, i_codes = model_utils.encode_ratings(ratings_df)
    model = NMF(matrix, NMFConfig(num_factors=2, num_iters=2)).fit()
    empty, _, _ = model_utils.encode_ratings(ratings_df.iloc[:0], u_codes, i_codes)

    metrics = model_utils.evaluate(model, empty)
    assert metrics["count"] == 0
    assert math.isnan(metrics["RMSE"])


def test_recommend_excludes_seen_items(ratings_df):
    matrix, u_codes, _ = model_utils.encode_ratings(ratings_df)
    model = NMF(matrix, NMFConfig(num_factors=2, num_iters=10)).fit()

    u = u_codes["alice"]
    seen = set(matrix.row(u).index.tolist())
    recs = model_utils.recommend(model, u, k=10)

    assert len(recs) == 2
    assert not seen & {j for j, _ in recs}
    assert recs[0][1] >= recs[1][1]

    all_items = model_utils.recommend(model, u, k=10, exclude_seen=False)
    assert len(all_items) == 4
    assert all_items[0][1] == pytest.approx(max(model.predict_row(u)))


def test_build_and_load_artifact(tmp_path, ratings_csv):
    out = tmp_path / "artifacts" / "nmf.joblib"
    path = model_utils.build_nmf_model(
        ratings_csv,
        out,
        config=NMFConfig(num_factors=2, num_iters=15, strategy="dense"),
        tol=0.0,
        test_ratio=0.25,
        random_state=0,
    )

    assert path == out.resolve()
    artifact = model_utils.load_nmf_artifact(path)

    assert artifact["config"]["strategy"] == "dense"
    assert artifact["W"].shape[1] == 2
    assert artifact["H"].shape[0] == 2
    assert artifact["metrics"]["count"] <= 2
    assert np.all(artifact["W"] >= 0)

    model = model_utils.model_from_artifact(artifact)
    assert model.loss == artifact["loss"]
    u = next(iter(artifact["u_codes"].values()))
    np.testing.assert_allclose(model.predict_row(u), artifact["W"][u] @ artifact["H"])


def test_recommend_items_uses_raw_ids(tmp_path, ratings_csv):
    path = model_utils.build_nmf_model(
        ratings_csv,
        tmp_path / "nmf.joblib",
        config=NMFConfig(num_factors=2, num_iters=10),
    )
    artifact = model_utils.load_nmf_artifact(path)

    recs = model_utils.recommend_items(artifact, "alice", k=5)
    assert {item for item, _ in recs} == {"i3", "i4"}

    assert model_utils.recommend_items(artifact, "nobody") == []


def test_load_missing_artifact(tmp_path):
    with pytest.raises(model_utils.MissingArtifactError):
        model_utils.load_nmf_artifact(tmp_path / "missing.joblib")
