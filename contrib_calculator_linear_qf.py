import math
import os
import time
import numpy as np
import pandas as pd
import seaborn as sns
import matplotlib.pyplot as plt

from linear_qf import (
    CAP,
    REDISTRIBUTE,
    Contribution,
    InvalidContributionError,
    calculate_linear_qf,
)

DEFAULT_TOTAL_POT = 100000.0
DEFAULT_CAP_AMOUNT = 10000.0

VOTES_JSON_FILE = 'votes.json'
ROUND_CSV_FILE = 'round_contributions.csv'
VOTES_TOTAL_POT = 350000000000000000000000.0
VOTES_CAP_AMOUNT = 14000000000000000000000.0

CSV_COLUMNS = ['grant_id', 'contributor_profile_id', 'amount_per_period_usdt']
VOTE_FIELDS = ['grantAddress', 'voter', 'amountRoundToken']

RANDOM_NAMES = ['Alice', 'Bob', 'Thomas', 'Ben', 'Jason', 'Mary']



'''
    data conversion function, from csv

    args:
        csv file
            'filename.csv'
        grant type
            str ('tech', 'media', 'health') or None for every row

    returns:
        list of lists of grant data
            [[grant_id (str), user_id (str), contribution_amount (float)]]
'''
def get_data_csv(csv_file, grant_type=None):
    # read data
    df = pd.read_csv(csv_file)

    # select grant type
    if grant_type is not None:
        df = df[df['grant_type'] == grant_type]

    # get relevant rows
    dr = df[CSV_COLUMNS].copy()
    dr['grant_id'] = dr['grant_id'].astype(str)
    dr['contributor_profile_id'] = dr['contributor_profile_id'].astype(str)
    dr['amount_per_period_usdt'] = dr['amount_per_period_usdt'].astype(float)

    # create list of lists from dataframe
    data_list = dr.T.values.T.tolist()

    return data_list


def _to_amount(value):
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidContributionError(f'unreadable vote amount {value!r}') from e
    if not math.isfinite(amount):
        raise InvalidContributionError(f'unreadable vote amount {value!r}')
    return amount



'''
    data conversion function, from an exported votes json array

    args:
        json file
            [{'voter': str, 'grantAddress': str, 'amountRoundToken': str}]

    returns:
        list of contributions
            [Contribution(recipient, sender, amount)]
'''
def get_data_votes(json_file):
    # amounts are decimal strings, keep pandas from guessing at them
    df = pd.read_json(json_file, dtype=False)
    if df.empty:
        return []

    votes = df[VOTE_FIELDS]
    return [
        Contribution(recipient=str(grant), sender=str(voter), amount=_to_amount(amount))
        for grant, voter, amount in votes.itertuples(index=False)
    ]



'''
    random contributions for trying out rounds, a sender never gives to itself

    args:
        num_contributions
            int
        _seed
            int or None (unseeded)
        names
            list of names, at least two
'''
def get_data_random(num_contributions, _seed=None, names=RANDOM_NAMES):
    rng = np.random.default_rng(_seed)
    contributions = []
    for _ in range(num_contributions):
        sender, recipient = rng.choice(names, size=2, replace=False)
        contributions.append(Contribution(recipient=f'0x{recipient}', sender=f'0x{sender}', amount=float(rng.random())))

    return contributions


def summarize_distribution(totals, total_pot):
    total_distributed = sum(t['match_amount'] for t in totals)
    if total_pot > 0:
        percentage_distributed = (total_distributed / total_pot) * 100
    else:
        percentage_distributed = 0.0

    return {
        'total_distributed': total_distributed,
        'percentage_distributed': percentage_distributed,
        'num_recipients': len(totals),
        'num_zero_match': len([t for t in totals if t['match_amount'] == 0]),
        'saturation_point': total_distributed >= total_pot or math.isclose(total_distributed, total_pot),
    }


def results_dataframe(totals):
    df = pd.DataFrame(totals, columns=['recipient', 'match_amount'])
    df = df.sort_values('match_amount', ascending=False, kind='stable')

    return df.reset_index(drop=True)



'''
    runs the round uncapped, capped and capped with redistribution

    returns:
        a dataframe with four columns ['recipient', 'uncapped', 'cap', 'redistribute']
'''
def compare_strategies(contributions, total_pot=DEFAULT_TOTAL_POT, cap=DEFAULT_CAP_AMOUNT, upscale=False):
    contributions = list(contributions)

    uncapped = calculate_linear_qf(contributions, total_pot, upscale=upscale)
    capped = calculate_linear_qf(contributions, total_pot, matching_cap_amount=cap, matching_cap_strategy=CAP, upscale=upscale)
    redistributed = calculate_linear_qf(contributions, total_pot, matching_cap_amount=cap, matching_cap_strategy=REDISTRIBUTE, upscale=upscale)

    ru = pd.DataFrame(uncapped, columns=['recipient', 'match_amount']).rename(columns={'match_amount': 'uncapped'})
    rc = pd.DataFrame(capped, columns=['recipient', 'match_amount']).rename(columns={'match_amount': CAP})
    rr = pd.DataFrame(redistributed, columns=['recipient', 'match_amount']).rename(columns={'match_amount': REDISTRIBUTE})

    rf = ru.merge(rc, how='inner', on='recipient')
    rf = rf.merge(rr, how='inner', on='recipient')

    return rf



'''
    Shows us distribution plot of match amount by recipient.

    Args:
        fdata = dataframe with a recipient column
        y_val = (match_amount, uncapped, cap or redistribute)
        _title = (title of graph, also the output file)

    Returns: the saved file name
'''
def distribution_plot(fdata, y_val, _title):
    fig, ax = plt.subplots(figsize=(20, 10))
    sns.barplot(data=fdata, x='recipient', y=y_val, color='tab:blue', ax=ax)
    ax.tick_params(axis='x', labelrotation=45)
    ax.set_title(str(_title))
    fig.savefig(_title, bbox_inches='tight')
    plt.close(fig)

    return _title



'''
    run all calculation functions

    args:
        csv_file
            'filename.csv'
        total_pot
            float
        matching_cap_amount
            float or None

    returns:
        match amounts by recipient
'''
def run_calcs(csv_file, grant_type=None, total_pot=DEFAULT_TOTAL_POT, matching_cap_amount=None, matching_cap_strategy=CAP, upscale=False):
    start_time = time.time()
    curr_round = get_data_csv(csv_file, grant_type)
    totals = calculate_linear_qf(
        curr_round,
        total_pot,
        matching_cap_amount=matching_cap_amount,
        matching_cap_strategy=matching_cap_strategy,
        upscale=upscale,
    )
    print('live calc runtime --- %s seconds ---' % (time.time() - start_time))

    summary = summarize_distribution(totals, total_pot)
    print(f'POT: {total_pot} | DISTRIBUTED: {summary["total_distributed"]} ({summary["percentage_distributed"]:.2f}%) | SATURATED: {summary["saturation_point"]}')

    return totals



if __name__ == '__main__':
    if os.path.exists(ROUND_CSV_FILE):
        totals = run_calcs(ROUND_CSV_FILE, total_pot=DEFAULT_TOTAL_POT, matching_cap_amount=DEFAULT_CAP_AMOUNT, matching_cap_strategy=REDISTRIBUTE)
        results_dataframe(totals).to_csv('linear_qf_round_results.csv', index=False)

    if os.path.exists(VOTES_JSON_FILE):
        contributions = get_data_votes(VOTES_JSON_FILE)
        total_pot, cap = VOTES_TOTAL_POT, VOTES_CAP_AMOUNT
    else:
        contributions = get_data_random(500, _seed=9)
        total_pot, cap = 1000.0, 40.0
    print(f'total votes: {len(contributions)}')

    start_time = time.time()
    rf = compare_strategies(contributions, total_pot=total_pot, cap=cap)
    print('live calc runtime --- %s seconds ---' % (time.time() - start_time))

    rf.to_csv('linear_qf_strategy_comparison.csv', index=False)
    distribution_plot(rf, 'uncapped', 'linear_qf_uncapped')
    distribution_plot(rf, CAP, 'linear_qf_cap')
    distribution_plot(rf, REDISTRIBUTE, 'linear_qf_redistribute')
