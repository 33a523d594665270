import math
from collections import namedtuple

CAP = 'cap'
REDISTRIBUTE = 'redistribute'
MATCHING_CAP_STRATEGIES = (CAP, REDISTRIBUTE)

Contribution = namedtuple('Contribution', ['recipient', 'sender', 'amount'])


class QfConfigError(ValueError):
    pass


class InvalidContributionError(ValueError):
    pass



'''
    aggregates contributions by recipient, then by sender

    args:
        list of contributions
            [[recipient (str), sender (str), amount (float)]]

    returns:
        aggregated contributions in nested dict
            {
                recipient (str): {
                    sender (str): aggregated_amount (float)
                }
            }
'''
def aggregate_contributions(contributions):
    contrib_dict = {}
    for proj, user, amount in contributions:
        if proj not in contrib_dict:
            contrib_dict[proj] = {}
        contrib_dict[proj][user] = contrib_dict[proj].get(user, 0) + amount

    return contrib_dict



'''
    quadratic match per recipient, (sum of sqrt contributions)^2 - sum of contributions

    args:
        aggregated contributions
            {recipient (str): {sender (str): aggregated_amount (float)}}

    returns:
        match amount by recipient
            [{'recipient': proj, 'match_amount': tot}]
        total match before any scaling
            float
'''
def calculate_matches(aggregated_contributions):
    total_match = 0
    totals = []
    for proj, contribz in aggregated_contributions.items():
        sum_of_sqrt = 0
        sum_of_contrib = 0
        for user, amount in contribz.items():
            if not math.isfinite(amount):
                raise InvalidContributionError(f'non-finite amount {amount} from {user} to {proj}')
            if amount < 0:
                raise InvalidContributionError(f'negative aggregate {amount} from {user} to {proj}')
            sum_of_sqrt += math.sqrt(amount)
            sum_of_contrib += amount

        # single donation doesn't get a match, zero amounts don't count as donations
        if len([a for a in contribz.values() if a > 0]) < 2:
            tot = 0.0
        else:
            tot = max(sum_of_sqrt ** 2 - sum_of_contrib, 0.0)

        total_match += tot
        totals.append({'recipient': proj, 'match_amount': tot})

    return totals, total_match



'''
    scales matches down to the pot when the total overshoots it

    returns:
        saturation point
            boolean
'''
def normalize_matches(totals, total_match, matching_pot):
    if total_match <= matching_pot:
        return False

    for t in totals:
        t['match_amount'] = (t['match_amount'] * matching_pot) / total_match

    return True


def upscale_matches(totals, total_match, matching_pot):
    if total_match == 0:
        raise QfConfigError('cannot upscale when no recipient has a match')

    if total_match >= matching_pot:
        return False

    upscale_factor = matching_pot / total_match
    for t in totals:
        t['match_amount'] *= upscale_factor

    return True



'''
    applies the per recipient matching cap

    args:
        totals
            [{'recipient': proj, 'match_amount': tot}]
        cap
            float
        strategy
            str ('cap' or 'redistribute') only

    'cap' clamps into [0, cap] and drops the overflow. 'redistribute' clamps
    anything over the cap, then splits the overflow evenly across recipients
    still under the cap, clamping again. whatever the second clamp cuts off
    is not passed around again, and if nobody is under the cap the overflow
    stays undistributed.

    returns:
        overflow left undistributed
            float
'''
def apply_matching_cap(totals, cap, strategy=CAP):
    if strategy == CAP:
        overflow_total = 0
        for t in totals:
            if t['match_amount'] > cap:
                overflow_total += t['match_amount'] - cap
                t['match_amount'] = cap
            elif t['match_amount'] < 0:
                t['match_amount'] = 0.0
        return overflow_total

    # 1. clamp and collect overflow
    overflow_total = 0
    eligible_count = 0
    for t in totals:
        if t['match_amount'] > cap:
            overflow_total += t['match_amount'] - cap
            t['match_amount'] = cap
        elif t['match_amount'] < cap:
            eligible_count += 1

    if overflow_total <= 0 or eligible_count == 0:
        return overflow_total

    # 2. single redistribution pass
    share = overflow_total / eligible_count
    leftover = 0
    for t in totals:
        if t['match_amount'] < cap:
            t['match_amount'] += share
            if t['match_amount'] > cap:
                leftover += t['match_amount'] - cap
                t['match_amount'] = cap

    return leftover


def validate_options(matching_pot, matching_cap_amount=None, matching_cap_strategy=CAP):
    if not math.isfinite(matching_pot) or matching_pot < 0:
        raise QfConfigError(f'matching pot must be a non-negative number, got {matching_pot}')
    if matching_cap_amount is not None and (not math.isfinite(matching_cap_amount) or matching_cap_amount < 0):
        raise QfConfigError(f'matching cap must be a non-negative number, got {matching_cap_amount}')
    if matching_cap_strategy not in MATCHING_CAP_STRATEGIES:
        raise QfConfigError(f'unknown matching cap strategy {matching_cap_strategy!r}')



'''
    runs the linear qf calculation for one round

    args:
        contributions
            [[recipient (str), sender (str), amount (float)]]
        matching_pot
            float
        matching_cap_amount
            float or None (no cap)
        matching_cap_strategy
            str ('cap' or 'redistribute') only
        upscale
            boolean (spend the whole pot when matches fall short of it)

    returns:
        match amount by recipient, in order of first appearance
            [{'recipient': proj, 'match_amount': tot}]
'''
def calculate_linear_qf(contributions, matching_pot, matching_cap_amount=None, matching_cap_strategy=CAP, upscale=False):
    validate_options(matching_pot, matching_cap_amount, matching_cap_strategy)
    if upscale and matching_pot <= 0:
        raise QfConfigError(f'cannot upscale to a matching pot of {matching_pot}')

    agg = aggregate_contributions(contributions)
    totals, total_match = calculate_matches(agg)

    saturated = normalize_matches(totals, total_match, matching_pot)
    if upscale and not saturated:
        upscale_matches(totals, total_match, matching_pot)

    if matching_cap_amount is not None:
        apply_matching_cap(totals, matching_cap_amount, matching_cap_strategy)

    return totals
