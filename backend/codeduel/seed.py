from codeduel import db
from codeduel.models import Question

SAMPLE_QUESTIONS = [
    {
        'title': 'Sum of Two Numbers',
        'description': 'Read two integers on one line and print their sum.',
        'difficulty': 'EASY',
        'tags': ['MATH'],
        'test_cases': {
            'public': [{'input': '1 2', 'output': '3'}],
            'hidden': [{'input': '-5 5', 'output': '0'}, {'input': '100 250', 'output': '350'}],
        },
        'expected_time_complexity': 'O(1)',
        'expected_space_complexity': 'O(1)',
    },
    {
        'title': 'Maximum Element',
        'description': 'Read N then N integers and print the largest one.',
        'difficulty': 'EASY',
        'tags': ['ARRAY'],
        'test_cases': [
            {'input': '3\n1 5 2', 'output': '5'},
            {'input': '1\n-7', 'output': '-7'},
        ],
        'expected_time_complexity': 'O(n)',
        'expected_space_complexity': 'O(1)',
    },
    {
        'title': 'Count Connected Components',
        'description': 'Read N M then M edges of an undirected graph; print the number of components.',
        'difficulty': 'MEDIUM',
        'tags': ['GRAPH'],
        'test_cases': {
            'testCases': [
                {'stdin': '4 2\n1 2\n3 4', 'expected_output': '2'},
                {'stdin': '3 0', 'expected_output': '3'},
            ],
        },
        'expected_time_complexity': 'O(n + m)',
        'expected_space_complexity': 'O(n)',
    },
]


def seed_questions():
    for fields in SAMPLE_QUESTIONS:
        db.session.add(Question(**fields))
    db.session.commit()
    return len(SAMPLE_QUESTIONS)
