import pytest
from larastack.UTILS.string_interpolation import EnvironmentInterpolator

CONTEXT = {'DB': 'postgres', 'EMPTY': ''}

@pytest.mark.parametrize('template, expected', [
    ('${DB}', 'postgres'),
    ('$DB:5432', 'postgres:5432'),
    ('${DB:-mysql}', 'postgres'),
    ('${EMPTY:-fallback}', 'fallback'),
    ('${EMPTY-fallback}', ''),
    ('${UNSET-fallback}', 'fallback'),
    ('${DB:+set}', 'set'),
    ('${EMPTY:+set}', ''),
    ('${EMPTY+set}', 'set'),
    ('$${DB} costs $$5', '${DB} costs $5'),
])
def test_interpolate(template, expected):
    assert EnvironmentInterpolator.interpolate(template, CONTEXT) == expected

def test_unset_variable_is_blank_and_reported():
    missing = []
    assert EnvironmentInterpolator.interpolate('host=${HOST}', {}, missing) == 'host='
    assert missing == ['HOST']

def test_required_variable():
    with pytest.raises(KeyError):
        EnvironmentInterpolator.interpolate('${EMPTY:?must be set}', CONTEXT)
    assert EnvironmentInterpolator.interpolate('${EMPTY?must be set}', CONTEXT) == ''

@pytest.mark.parametrize('template, expected', [
    ('${UNSET:-${DB}}', 'postgres'),
    ('${DB:-${UNSET}}', 'postgres'),
    ('${UNSET:-${OTHER:-5432}}', '5432'),
    ('${UNSET:-tcp://${DB}:5432}', 'tcp://postgres:5432'),
    ('${DB:+host=${DB}}', 'host=postgres'),
    ('${UNSET:-a$$b}', 'a$b'),
])
def test_nested_default(template, expected):
    assert EnvironmentInterpolator.interpolate(template, CONTEXT) == expected

def test_nested_default_reports_unset_inner_variable():
    missing = []
    assert EnvironmentInterpolator.interpolate('${UNSET:-${ALSO_UNSET}}', CONTEXT, missing) == ''
    assert missing == ['ALSO_UNSET']
