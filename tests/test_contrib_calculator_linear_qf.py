import json

import matplotlib

matplotlib.use('Agg')

import pandas as pd
import pytest

from contrib_calculator_linear_qf import (
    RANDOM_NAMES,
    compare_strategies,
    distribution_plot,
    get_data_csv,
    get_data_random,
    get_data_votes,
    results_dataframe,
    run_calcs,
    summarize_distribution,
)
from linear_qf import CAP, REDISTRIBUTE, Contribution, InvalidContributionError


@pytest.fixture
def round_csv(tmp_path):
    path = tmp_path / 'round.csv'
    pd.DataFrame({
        'grant_id': [1, 1, 1, 2, 2, 3],
        'contributor_profile_id': [10, 11, 10, 10, 12, 11],
        'amount_per_period_usdt': [4, 1, 5, 9, 16, 2],
        'grant_type': ['tech', 'tech', 'tech', 'tech', 'media', 'tech'],
    }).to_csv(path, index=False)
    return path


@pytest.fixture
def votes_json(tmp_path):
    path = tmp_path / 'votes.json'
    path.write_text(json.dumps([
        {'voter': '0xaaa', 'grantAddress': '0x111', 'amountRoundToken': '4000000000000000000'},
        {'voter': '0xbbb', 'grantAddress': '0x111', 'amountRoundToken': '9000000000000000000'},
        {'voter': '0xaaa', 'grantAddress': '0x222', 'amountRoundToken': '1000000000000000000'},
    ]))
    return path


# =============================================================================
# data conversion
# =============================================================================

def test_get_data_csv_reads_every_row(round_csv):
    data = get_data_csv(round_csv)
    assert data[0] == ['1', '10', 4.0]
    assert len(data) == 6
    assert all(isinstance(amount, float) for _, _, amount in data)


def test_get_data_csv_filters_grant_type(round_csv):
    data = get_data_csv(round_csv, 'media')
    assert data == [['2', '12', 16.0]]


def test_get_data_votes_maps_fields(votes_json):
    contributions = get_data_votes(votes_json)
    assert contributions[0] == Contribution(recipient='0x111', sender='0xaaa', amount=4e18)
    assert [c.recipient for c in contributions] == ['0x111', '0x111', '0x222']
    assert contributions[1].amount == pytest.approx(9e18)


def test_get_data_votes_rejects_unreadable_amount(tmp_path):
    path = tmp_path / 'votes.json'
    path.write_text(json.dumps([{'voter': '0xaaa', 'grantAddress': '0x111', 'amountRoundToken': 'lots'}]))
    with pytest.raises(InvalidContributionError):
        get_data_votes(path)


def test_get_data_votes_empty_export(tmp_path):
    path = tmp_path / 'votes.json'
    path.write_text('[]')
    assert get_data_votes(path) == []


def test_get_data_random_is_reproducible():
    first = get_data_random(25, _seed=3)
    second = get_data_random(25, _seed=3)
    assert first == second
    assert len(first) == 25


def test_get_data_random_never_self_contributes():
    names = {f'0x{n}' for n in RANDOM_NAMES}
    for c in get_data_random(200, _seed=11):
        assert c.sender != c.recipient
        assert c.sender in names
        assert c.recipient in names
        assert 0.0 <= c.amount < 1.0


# =============================================================================
# reporting
# =============================================================================

def test_summarize_distribution():
    totals = [
        {'recipient': 'a', 'match_amount': 60.0},
        {'recipient': 'b', 'match_amount': 0.0},
        {'recipient': 'c', 'match_amount': 15.0},
    ]
    summary = summarize_distribution(totals, 100.0)
    assert summary['total_distributed'] == pytest.approx(75.0)
    assert summary['percentage_distributed'] == pytest.approx(75.0)
    assert summary['num_recipients'] == 3
    assert summary['num_zero_match'] == 1
    assert summary['saturation_point'] is False

    assert summarize_distribution(totals, 75.0)['saturation_point'] is True


def test_results_dataframe_sorted_by_match():
    df = results_dataframe([
        {'recipient': 'a', 'match_amount': 1.0},
        {'recipient': 'b', 'match_amount': 3.0},
        {'recipient': 'c', 'match_amount': 2.0},
    ])
    assert list(df['recipient']) == ['b', 'c', 'a']
    assert list(df.columns) == ['recipient', 'match_amount']


def test_results_dataframe_empty_round():
    df = results_dataframe([])
    assert df.empty
    assert list(df.columns) == ['recipient', 'match_amount']


def test_compare_strategies_side_by_side():
    contributions = get_data_random(80, _seed=5)
    rf = compare_strategies(contributions, total_pot=10.0, cap=2.0)
    assert list(rf.columns) == ['recipient', 'uncapped', CAP, REDISTRIBUTE]
    assert set(rf['recipient']) == {c.recipient for c in contributions}
    assert (rf[CAP] <= 2.0).all()
    assert (rf[REDISTRIBUTE] <= 2.0).all()
    assert (rf[REDISTRIBUTE] >= rf[CAP] - 1e-12).all()
    assert rf[REDISTRIBUTE].sum() <= rf['uncapped'].sum() * (1 + 1e-9)


def test_distribution_plot_writes_file(tmp_path):
    rf = compare_strategies(get_data_random(30, _seed=1), total_pot=10.0, cap=3.0)
    out = tmp_path / 'cap.png'
    assert distribution_plot(rf, CAP, out) == out
    assert out.exists()
    assert out.stat().st_size > 0


def test_run_calcs_prints_summary(round_csv, capsys):
    totals = run_calcs(round_csv, grant_type='tech', total_pot=5.0)
    out = capsys.readouterr().out
    assert 'live calc runtime' in out
    assert 'SATURATED: True' in out

    matches = {t['recipient']: t['match_amount'] for t in totals}
    # grant 1: user 10 gives 9, user 11 gives 1 -> (3 + 1)^2 - 10 = 6
    # grants 2 and 3 have a single tech contributor each
    assert matches == {'1': pytest.approx(5.0), '2': 0.0, '3': 0.0}
