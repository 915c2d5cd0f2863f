def _field(case, *names):
    for name in names:
        value = case.get(name)
        if value is not None and value != '':
            return str(value)
    return ''


def normalize_test_cases(raw):
    """Flatten any stored test-case shape into ``[{'input', 'output'}]``.

    Accepted shapes: a flat list, ``{'testCases': [...]}`` and
    ``{'public': [...], 'hidden': [...]}`` (public cases first). Each case may
    spell its fields ``input``/``stdin`` and ``output``/``expected_output``/
    ``stdout``. Already-normalized input comes back unchanged.
    """
    if isinstance(raw, list):
        cases = raw
    elif isinstance(raw, dict):
        if isinstance(raw.get('testCases'), list):
            cases = raw['testCases']
        else:
            cases = list(raw.get('public') or []) + list(raw.get('hidden') or [])
    else:
        cases = []

    return [
        {
            'input': _field(case, 'input', 'stdin'),
            'output': _field(case, 'output', 'expected_output', 'stdout'),
        }
        for case in cases
        if isinstance(case, dict)
    ]
